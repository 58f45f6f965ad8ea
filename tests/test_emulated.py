import pytest

from pcilib.access import Access, Device, Fill
from pcilib.emulated import (
    PCI_BASE_ADDRESS_IO_MASK,
    PCI_BASE_ADDRESS_MEM_MASK,
    PCI_CB_MEMORY_BASE_0,
    PCI_CLASS_BRIDGE_CARDBUS,
    PCI_CLASS_BRIDGE_PCI,
    PCI_COMMAND,
    PCI_COMMAND_IO,
    PCI_COMMAND_MEMORY,
    PCI_IO_BASE,
    PCI_IO_RANGE_MASK,
    PCI_IO_RANGE_TYPE_16,
    PCI_IORESOURCE_IO,
    PCI_IORESOURCE_IO_16BIT_ADDR,
    PCI_IORESOURCE_MEM,
    PCI_IORESOURCE_MEM_64,
    PCI_IORESOURCE_PREFETCH,
    PCI_PRIMARY_BUS,
    PCI_ROM_ADDRESS_ENABLE,
    PCI_ROM_ADDRESS_MASK,
    emulated_read,
)
from pcilib.generic import (
    PCI_HEADER_TYPE,
    PCI_HEADER_TYPE_BRIDGE,
    PCI_HEADER_TYPE_CARDBUS,
    PCI_HEADER_TYPE_NORMAL,
    PCI_INTERRUPT_LINE,
    PCI_ROM_ADDRESS,
    PCI_SUBSYSTEM_VENDOR_ID,
    GenericMethod,
)


class _SelfEmulated(GenericMethod):
    def read(self, dev, pos, length):
        return emulated_read(dev, pos, length)


class _Mirror(GenericMethod):
    def __init__(self, source):
        self.source = source

    def read(self, dev, pos, length):
        return emulated_read(self.source, pos, length)


def _device(**fields):
    access = Access()
    dev = Device(access)
    for name, value in fields.items():
        setattr(dev, name, value)
    return dev


def _u32(data):
    return int.from_bytes(data, "little")


def test_positions_past_header_are_not_emulated():
    dev = _device(vendor_id=0x1234)
    assert emulated_read(dev, 64, 4) is None
    assert emulated_read(dev, 0x100, 1) is None


def test_vendor_and_device_id():
    dev = _device(vendor_id=0x1234, device_id=0xABCD)
    assert emulated_read(dev, 0, 4) == b"\x34\x12\xcd\xab"
    assert emulated_read(dev, 2, 2) == b"\xcd\xab"
    assert emulated_read(dev, 0, 1) == b"\x34"


@pytest.mark.parametrize(
    "device_class, header",
    [
        (0x0200, PCI_HEADER_TYPE_NORMAL),
        (PCI_CLASS_BRIDGE_PCI, PCI_HEADER_TYPE_BRIDGE),
        (PCI_CLASS_BRIDGE_CARDBUS, PCI_HEADER_TYPE_CARDBUS),
    ],
)
def test_header_type_follows_class(device_class, header):
    dev = _device(device_class=device_class)
    assert emulated_read(dev, PCI_HEADER_TYPE, 1) == bytes([header])


def test_command_enables_decoded_spaces():
    dev = _device()
    dev.size[0] = 0x100
    dev.flags[0] = PCI_IORESOURCE_IO
    dev.size[1] = 0x1000
    dev.flags[1] = PCI_IORESOURCE_MEM
    assert emulated_read(dev, PCI_COMMAND, 2) == bytes([PCI_COMMAND_IO | PCI_COMMAND_MEMORY, 0])


def test_command_ignores_resources_without_size():
    dev = _device()
    dev.flags[0] = PCI_IORESOURCE_IO
    assert emulated_read(dev, PCI_COMMAND, 2) == b"\x00\x00"


def test_irq_in_and_out_of_range():
    assert emulated_read(_device(irq=11), PCI_INTERRUPT_LINE, 1) == bytes([11])
    assert emulated_read(_device(irq=300), PCI_INTERRUPT_LINE, 1) == b"\x00"
    assert emulated_read(_device(irq=-1), PCI_INTERRUPT_LINE, 1) == b"\x00"


def test_64bit_bar_upper_half_goes_to_next_register():
    base = (2 << 32) | 0x1000
    dev = _device()
    dev.base_addr[0] = base
    dev.flags[0] = PCI_IORESOURCE_MEM | PCI_IORESOURCE_MEM_64
    low = _u32(emulated_read(dev, 0x10, 4))
    high = _u32(emulated_read(dev, 0x14, 4))
    assert low & PCI_BASE_ADDRESS_MEM_MASK == base & 0xFFFFFFFF
    assert high == base >> 32


def test_rom_address_enabled_when_present():
    dev = _device(rom_base_addr=0xFE000000)
    value = _u32(emulated_read(dev, PCI_ROM_ADDRESS, 4))
    assert value == 0xFE000000 | PCI_ROM_ADDRESS_ENABLE
    assert _u32(emulated_read(_device(), PCI_ROM_ADDRESS, 4)) == 0


def test_subsystem_ids_in_normal_header():
    dev = _device(subsys_vendor_id=0x1111, subsys_id=0x2222)
    data = emulated_read(dev, PCI_SUBSYSTEM_VENDOR_ID, 4)
    assert data[:2] == (0x1111).to_bytes(2, "little")
    assert data[2:] == (0x2222).to_bytes(2, "little")


def test_bridge_primary_bus():
    dev = _device(device_class=PCI_CLASS_BRIDGE_PCI, bus=5)
    assert emulated_read(dev, PCI_PRIMARY_BUS, 1) == bytes([5])


def test_bridge_without_io_window():
    dev = _device(device_class=PCI_CLASS_BRIDGE_PCI)
    assert emulated_read(dev, PCI_IO_BASE, 1) == bytes([0xFF & PCI_IO_RANGE_MASK])


def test_bridge_io_window_decodes_back():
    dev = _device(device_class=PCI_CLASS_BRIDGE_PCI)
    dev.bridge_base_addr[0] = 0x2000
    dev.bridge_size[0] = 0x1000
    dev.bridge_flags[0] = PCI_IORESOURCE_IO_16BIT_ADDR
    lo, hi = emulated_read(dev, PCI_IO_BASE, 2)
    assert (lo & 0xF0) << 8 == dev.bridge_base_addr[0]
    assert ((hi & 0xF0) << 8) | 0xFFF == dev.bridge_base_addr[0] + dev.bridge_size[0] - 1
    assert lo & 0x0F == PCI_IO_RANGE_TYPE_16
    assert hi & 0x0F == PCI_IO_RANGE_TYPE_16


def test_cardbus_empty_memory_window():
    dev = _device(device_class=PCI_CLASS_BRIDGE_CARDBUS)
    assert _u32(emulated_read(dev, PCI_CB_MEMORY_BASE_0, 4)) == 0xFFFFFFFF & ~0xFFF


def test_block_read_matches_dword_reads():
    access = Access()
    access.methods = _SelfEmulated()
    dev = Device(access)
    dev.vendor_id, dev.device_id, dev.device_class = 0x1234, 0x5678, 0x0300
    dev.base_addr[0] = 0xE000
    dev.flags[0] = PCI_IORESOURCE_IO
    block = emulated_read(dev, 0, 20)
    pieces = b"".join(emulated_read(dev, pos, 4) for pos in range(0, 20, 4))
    assert block == pieces
    assert len(block) == 20


def test_round_trip_through_generic_decoding():
    access = Access()
    source = Device(access)
    source.vendor_id = 0x1234
    source.device_id = 0x5678
    source.device_class = 0x0280
    source.prog_if = 0x01
    source.rev_id = 0x03
    source.irq = 10
    source.subsys_vendor_id = 0x4444
    source.subsys_id = 0x5555
    source.rom_base_addr = 0xFE000000
    source.base_addr[0] = 0xE000
    source.flags[0] = PCI_IORESOURCE_IO
    source.base_addr[2] = 0x3_0000_0000
    source.flags[2] = PCI_IORESOURCE_MEM | PCI_IORESOURCE_MEM_64 | PCI_IORESOURCE_PREFETCH

    access.methods = _Mirror(source)
    target = Device(access)
    target.fill_info(
        Fill.IDENT | Fill.CLASS | Fill.CLASS_EXT | Fill.SUBSYS
        | Fill.IRQ | Fill.BASES | Fill.ROM_BASE
    )

    assert target.vendor_id == source.vendor_id
    assert target.device_id == source.device_id
    assert target.device_class == source.device_class
    assert target.prog_if == source.prog_if
    assert target.rev_id == source.rev_id
    assert target.irq == source.irq
    assert target.subsys_vendor_id == source.subsys_vendor_id
    assert target.subsys_id == source.subsys_id
    assert target.base_addr[0] & PCI_BASE_ADDRESS_IO_MASK == source.base_addr[0]
    assert target.base_addr[2] & PCI_BASE_ADDRESS_MEM_MASK == source.base_addr[2]
    assert target.base_addr[3] == 0
    assert target.rom_base_addr & PCI_ROM_ADDRESS_MASK == source.rom_base_addr