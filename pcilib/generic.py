"""Generic bus scanning, header decoding and block access built on small reads."""

from __future__ import annotations

from typing import Callable, Iterator, MutableSet, Optional

from pcilib.access import Access, AccessMethod, Device, Fill
from pcilib.caps import CapType, find_cap, scan_caps

PCI_VENDOR_ID = 0x00
PCI_DEVICE_ID = 0x02
PCI_REVISION_ID = 0x08
PCI_CLASS_PROG = 0x09
PCI_CLASS_DEVICE = 0x0A
PCI_HEADER_TYPE = 0x0E
PCI_BASE_ADDRESS_0 = 0x10
PCI_SECONDARY_BUS = 0x19
PCI_SUBSYSTEM_VENDOR_ID = 0x2C
PCI_SUBSYSTEM_ID = 0x2E
PCI_ROM_ADDRESS = 0x30
PCI_ROM_ADDRESS1 = 0x38
PCI_INTERRUPT_LINE = 0x3C
PCI_CB_SUBSYSTEM_VENDOR_ID = 0x40
PCI_CB_SUBSYSTEM_ID = 0x42

PCI_HEADER_TYPE_NORMAL = 0
PCI_HEADER_TYPE_BRIDGE = 1
PCI_HEADER_TYPE_CARDBUS = 2

PCI_BASE_ADDRESS_SPACE = 0x01
PCI_BASE_ADDRESS_SPACE_IO = 0x01
PCI_BASE_ADDRESS_MEM_TYPE_MASK = 0x06
PCI_BASE_ADDRESS_MEM_TYPE_64 = 0x04

PCI_CAP_ID_SSVID = 0x0D
PCI_SSVID_VENDOR = 4
PCI_SSVID_DEVICE = 6

_BAR_COUNT = {
    PCI_HEADER_TYPE_NORMAL: 6,
    PCI_HEADER_TYPE_BRIDGE: 2,
    PCI_HEADER_TYPE_CARDBUS: 1,
}

_ROM_REGISTER = {
    PCI_HEADER_TYPE_NORMAL: PCI_ROM_ADDRESS,
    PCI_HEADER_TYPE_BRIDGE: PCI_ROM_ADDRESS1,
}


def _addr(dev: Device) -> str:
    return f"{dev.domain:04x}:{dev.bus:02x}:{dev.dev:02x}.{dev.func}"


def scan_bus(access: Access, busmap: MutableSet[int], bus: int) -> None:
    """Probe all slots of ``bus``, following bridges to their secondary buses."""
    access.debug(f"Scanning bus {bus:02x} for devices...\n")
    if bus in busmap:
        access.warning(f"Bus {bus:02x} seen twice (firmware bug). Ignored.")
        return
    busmap.add(bus)
    probe = access.alloc_dev()
    probe.bus = bus
    try:
        for slot in range(32):
            probe.dev = slot
            multi = False
            for func in range(8):
                if func and not multi:
                    break
                probe.func = func
                vd = probe.read_long(PCI_VENDOR_ID)
                if not vd or vd == 0xFFFFFFFF:
                    continue
                ht = probe.read_byte(PCI_HEADER_TYPE)
                if not func:
                    multi = bool(ht & 0x80)
                ht &= 0x7F
                d = access.alloc_dev()
                d.bus = probe.bus
                d.dev = probe.dev
                d.func = probe.func
                d.vendor_id = vd & 0xFFFF
                d.device_id = vd >> 16
                d.known_fields = int(Fill.IDENT)
                d.hdrtype = ht
                access.link_dev(d)
                if ht in (PCI_HEADER_TYPE_BRIDGE, PCI_HEADER_TYPE_CARDBUS):
                    scan_bus(access, busmap, probe.read_byte(PCI_SECONDARY_BUS))
                elif ht != PCI_HEADER_TYPE_NORMAL:
                    access.debug(
                        f"Device {_addr(d)} has unknown header type {ht:02x}.\n"
                    )
    finally:
        probe.free()


def generic_scan(access: Access) -> None:
    """Scan the device tree starting at bus 0."""
    scan_bus(access, set(), 0)


def _hdr_type(dev: Device) -> int:
    if dev.hdrtype < 0:
        dev.hdrtype = dev.read_byte(PCI_HEADER_TYPE) & 0x7F
    return dev.hdrtype


def _fill_subsys(dev: Device) -> None:
    ht = _hdr_type(dev)
    if ht == PCI_HEADER_TYPE_NORMAL:
        dev.subsys_vendor_id = dev.read_word(PCI_SUBSYSTEM_VENDOR_ID)
        dev.subsys_id = dev.read_word(PCI_SUBSYSTEM_ID)
    elif ht == PCI_HEADER_TYPE_BRIDGE:
        cap = find_cap(dev, PCI_CAP_ID_SSVID, CapType.NORMAL)
        if cap is not None:
            dev.subsys_vendor_id = dev.read_word(cap.addr + PCI_SSVID_VENDOR)
            dev.subsys_id = dev.read_word(cap.addr + PCI_SSVID_DEVICE)
    elif ht == PCI_HEADER_TYPE_CARDBUS:
        dev.subsys_vendor_id = dev.read_word(PCI_CB_SUBSYSTEM_VENDOR_ID)
        dev.subsys_id = dev.read_word(PCI_CB_SUBSYSTEM_ID)
    else:
        dev.clear_fill(Fill.SUBSYS)


def _fill_bases(dev: Device) -> None:
    dev.base_addr = [0] * 6
    cnt = _BAR_COUNT.get(_hdr_type(dev), 0)
    i = 0
    while i < cnt:
        x = dev.read_long(PCI_BASE_ADDRESS_0 + i * 4)
        if x and x != 0xFFFFFFFF:
            if (x & PCI_BASE_ADDRESS_SPACE) == PCI_BASE_ADDRESS_SPACE_IO:
                dev.base_addr[i] = x
            elif (x & PCI_BASE_ADDRESS_MEM_TYPE_MASK) != PCI_BASE_ADDRESS_MEM_TYPE_64:
                dev.base_addr[i] = x
            elif i >= cnt - 1:
                dev.access.warning(
                    f"{_addr(dev)}: Invalid 64-bit address seen for BAR {i}."
                )
            else:
                i += 1
                y = dev.read_long(PCI_BASE_ADDRESS_0 + i * 4)
                dev.base_addr[i - 1] = x | (y << 32)
        i += 1


def _fill_rom(dev: Device) -> None:
    dev.rom_base_addr = 0
    reg = _ROM_REGISTER.get(_hdr_type(dev))
    if reg is not None:
        value = dev.read_long(reg)
        if value != 0xFFFFFFFF:
            dev.rom_base_addr = value


def generic_fill_info(dev: Device, flags: int) -> None:
    """Fill device fields by decoding the standard configuration header."""
    if dev.want_fill(flags, Fill.IDENT):
        dev.vendor_id = dev.read_word(PCI_VENDOR_ID)
        dev.device_id = dev.read_word(PCI_DEVICE_ID)
    if dev.want_fill(flags, Fill.CLASS):
        dev.device_class = dev.read_word(PCI_CLASS_DEVICE)
    if dev.want_fill(flags, Fill.CLASS_EXT):
        dev.prog_if = dev.read_byte(PCI_CLASS_PROG)
        dev.rev_id = dev.read_byte(PCI_REVISION_ID)
    if dev.want_fill(flags, Fill.SUBSYS):
        _fill_subsys(dev)
    if dev.want_fill(flags, Fill.IRQ):
        dev.irq = dev.read_byte(PCI_INTERRUPT_LINE)
    if dev.want_fill(flags, Fill.BASES):
        _fill_bases(dev)
    if dev.want_fill(flags, Fill.ROM_BASE):
        _fill_rom(dev)
    scan_caps(dev, flags)


def _chunks(pos: int, length: int) -> Iterator[tuple[int, int]]:
    """Split a range into naturally aligned pieces of 1, 2 or 4 bytes."""
    if pos & 1 and length >= 1:
        yield pos, 1
        pos, length = pos + 1, length - 1
    if pos & 3 and length >= 2:
        yield pos, 2
        pos, length = pos + 2, length - 2
    while length >= 4:
        yield pos, 4
        pos, length = pos + 4, length - 4
    if length >= 2:
        yield pos, 2
        pos, length = pos + 2, length - 2
    if length:
        yield pos, 1


def _access_method(dev: Device) -> AccessMethod:
    method = dev.access.methods or dev.methods
    if method is None:
        dev.access.error("No access method has been initialised.")
    assert method is not None
    return method


def block_read(dev: Device, pos: int, length: int) -> Optional[bytes]:
    """Read a block as a series of aligned small reads; None if one fails."""
    read: Callable[[Device, int, int], Optional[bytes]] = _access_method(dev).read
    out = bytearray()
    for offset, size in _chunks(pos, length):
        piece = read(dev, offset, size)
        if piece is None:
            return None
        out += piece
    return bytes(out)


def block_write(dev: Device, pos: int, data: bytes) -> bool:
    """Write a block as a series of aligned small writes; False if one fails."""
    write = _access_method(dev).write
    data = bytes(data)
    for offset, size in _chunks(pos, len(data)):
        start = offset - pos
        if not write(dev, offset, data[start:start + size]):
            return False
    return True


class GenericMethod(AccessMethod):
    """Access method base that scans and fills info through config-space reads."""

    def scan(self, access: Access) -> None:
        generic_scan(access)

    def fill_info(self, dev: Device, flags: int) -> None:
        generic_fill_info(dev, flags)