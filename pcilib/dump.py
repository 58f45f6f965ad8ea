"""Reading devices from textual dumps of configuration space."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from pcilib.access import Access, Device
from pcilib.generic import GenericMethod

_INITIAL_SIZE = 256
_MAX_SIZE = 4096
_MAX_LINE = 254

_SLOT_RE = re.compile(
    r"(?:([0-9a-fA-F]{4,5}):)?([0-9a-fA-F]{2}):([0-9a-fA-F]{2})\.([0-9]) "
)
_DATA_RE = re.compile(r"([0-9a-fA-F]{2,8}): ")
_BYTE_RE = re.compile(r"([0-9a-fA-F]{2})(?: |\Z)")


@dataclass
class _DumpData:
    """Config-space bytes of one dumped device; ``length`` counts bytes seen."""

    data: bytearray = field(default_factory=lambda: bytearray(b"\xff" * _INITIAL_SIZE))
    length: int = 0

    def store(self, pos: int, value: int) -> None:
        if pos >= len(self.data):
            self.data.extend(b"\xff" * (_MAX_SIZE - len(self.data)))
        self.data[pos] = value
        self.length = max(self.length, pos + 1)


def _parse_bytes(access: Access, data: _DumpData, start: int, rest: str) -> None:
    pos = 0
    offset = start
    match = _BYTE_RE.match(rest, pos)
    while match:
        if offset >= _MAX_SIZE:
            access.error("dump: At most 4096 bytes of config space are supported")
        data.store(offset, int(match.group(1), 16))
        offset += 1
        pos = match.end()
        match = _BYTE_RE.match(rest, pos)
    if pos != len(rest):
        access.error("dump: Malformed line")


def parse_dump(lines: Iterable[str], access: Access) -> None:
    """Create and link a device for each slot header in a dump, with its bytes."""
    dev: Optional[Device] = None
    for raw in lines:
        if len(raw) > _MAX_LINE or not raw.endswith("\n"):
            access.error("dump: line too long or unterminated")
        line = raw[:-1]
        if line.endswith("\r"):
            line = line[:-1]

        slot = _SLOT_RE.match(line)
        if slot:
            domain = int(slot.group(1), 16) if slot.group(1) else 0
            dev = access.get_dev(
                domain,
                int(slot.group(2), 16),
                int(slot.group(3), 16),
                int(slot.group(4)),
            )
            dev.aux = _DumpData()
            access.link_dev(dev)
        elif not line:
            dev = None
        elif dev is not None:
            data_line = _DATA_RE.match(line)
            if data_line:
                _parse_bytes(
                    access, dev.aux, int(data_line.group(1), 16), line[data_line.end():]
                )


class DumpMethod(GenericMethod):
    """Access method serving devices from a dump file named by ``dump.name``."""

    name = "dump"
    help = "Reading of register dumps (set the `dump.name' parameter)"

    def config(self, access: Access) -> None:
        access.define_param("dump.name", "", "Name of the bus dump file to read from")

    def detect(self, access: Access) -> bool:
        return bool(access.get_param("dump.name"))

    def init(self, access: Access) -> None:
        name = access.get_param("dump.name")
        if name is None:
            access.error("dump: File name not given.")
            return
        try:
            handle = open(name, "rb")
        except OSError as exc:
            access.error(f"dump: Cannot open {name}: {exc.strerror}")
            return
        with handle:
            parse_dump((line.decode("latin-1") for line in handle), access)

    def scan(self, access: Access) -> None:
        """Devices were already linked while the dump was read."""

    def read(self, dev: Device, pos: int, length: int) -> Optional[bytes]:
        data = dev.aux
        if data is None:
            twin = next(
                (
                    e
                    for e in dev.access.devices
                    if (e.domain, e.bus, e.dev, e.func)
                    == (dev.domain, dev.bus, dev.dev, dev.func)
                ),
                None,
            )
            if twin is None or twin.aux is None:
                return None
            data = twin.aux
        if pos + length > data.length:
            return None
        return bytes(data.data[pos:pos + length])

    def write(self, dev: Device, pos: int, data: bytes) -> bool:
        dev.access.error("Writing to dump files is not supported.")
        return False

    def cleanup_dev(self, dev: Device) -> None:
        dev.aux = None