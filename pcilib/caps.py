"""Discovery of traditional and extended PCI capabilities."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from pcilib.access import Device, Fill

_PCI_STATUS = 0x06
_PCI_STATUS_CAP_LIST = 0x10
_PCI_CAPABILITY_LIST = 0x34
_PCI_CAP_LIST_ID = 0
_PCI_CAP_LIST_NEXT = 1
_PCI_CAP_ID_EXP = 0x10
_EXT_CAP_START = 0x100


class CapType(enum.IntEnum):
    NORMAL = 1
    EXTENDED = 2


@dataclass
class Capability:
    """A capability found in a device's configuration space."""

    addr: int
    id: int
    type: CapType


def _add_cap(dev: Device, addr: int, cap_id: int, cap_type: CapType) -> None:
    dev.caps.append(Capability(addr, cap_id, cap_type))
    dev.access.debug(
        f"{dev.domain:04x}:{dev.bus:02x}:{dev.dev:02x}.{dev.func}: "
        f"Found capability {cap_id:04x} of type {int(cap_type)} at {addr:04x}\n"
    )


def _scan_trad_caps(dev: Device) -> None:
    if not dev.read_word(_PCI_STATUS) & _PCI_STATUS_CAP_LIST:
        return
    seen: set[int] = set()
    where = dev.read_byte(_PCI_CAPABILITY_LIST) & ~3
    while where:
        cap_id = dev.read_byte(where + _PCI_CAP_LIST_ID)
        nxt = dev.read_byte(where + _PCI_CAP_LIST_NEXT) & ~3
        if where in seen:
            break
        seen.add(where)
        if cap_id == 0xFF:
            break
        _add_cap(dev, where, cap_id, CapType.NORMAL)
        where = nxt


def _scan_ext_caps(dev: Device) -> None:
    if find_cap(dev, _PCI_CAP_ID_EXP, CapType.NORMAL) is None:
        return
    seen: set[int] = set()
    where = _EXT_CAP_START
    while where:
        header = dev.read_long(where)
        if not header or header == 0xFFFFFFFF:
            break
        if where in seen:
            break
        seen.add(where)
        _add_cap(dev, where, header & 0xFFFF, CapType.EXTENDED)
        where = (header >> 20) & ~3


def scan_caps(dev: Device, want_fields: int) -> None:
    """Scan the capability lists requested by ``want_fields``."""
    want_fields = int(want_fields)
    if want_fields & Fill.EXT_CAPS:
        want_fields |= Fill.CAPS
    if dev.want_fill(want_fields, Fill.CAPS):
        _scan_trad_caps(dev)
    if dev.want_fill(want_fields, Fill.EXT_CAPS):
        _scan_ext_caps(dev)


def find_cap(dev: Device, cap_id: int, cap_type: CapType) -> Optional[Capability]:
    """Return the first capability with the given id and type."""
    return find_cap_nr(dev, cap_id, cap_type, 0)[0]


def find_cap_nr(
    dev: Device, cap_id: int, cap_type: CapType, number: int = 0
) -> tuple[Optional[Capability], int]:
    """Return the ``number``-th matching capability and how many match in all."""
    dev.fill_info(Fill.CAPS if cap_type == CapType.NORMAL else Fill.EXT_CAPS)
    matching = [c for c in dev.caps if c.type == cap_type and c.id == cap_id]
    found = matching[number] if 0 <= number < len(matching) else None
    return found, len(matching)