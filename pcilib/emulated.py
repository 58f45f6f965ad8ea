"""Configuration space synthesised from the fields already known about a device."""

from __future__ import annotations

from typing import Optional

from pcilib.access import Device
from pcilib.generic import (
    PCI_BASE_ADDRESS_0,
    PCI_BASE_ADDRESS_MEM_TYPE_64,
    PCI_BASE_ADDRESS_SPACE,
    PCI_BASE_ADDRESS_SPACE_IO,
    PCI_HEADER_TYPE_BRIDGE,
    PCI_HEADER_TYPE_CARDBUS,
    PCI_HEADER_TYPE_NORMAL,
    PCI_INTERRUPT_LINE,
    PCI_ROM_ADDRESS,
    PCI_ROM_ADDRESS1,
    PCI_SUBSYSTEM_VENDOR_ID,
    PCI_VENDOR_ID,
    block_read,
)

_U32 = 0xFFFFFFFF

PCI_COMMAND = 0x04
PCI_COMMAND_IO = 0x1
PCI_COMMAND_MEMORY = 0x2
PCI_CLASS_REVISION = 0x08
PCI_CACHE_LINE_SIZE = 0x0C
PCI_BASE_ADDRESS_1 = 0x14
PCI_BASE_ADDRESS_2 = 0x18
PCI_BASE_ADDRESS_3 = 0x1C
PCI_BASE_ADDRESS_4 = 0x20
PCI_BASE_ADDRESS_5 = 0x24

PCI_BASE_ADDRESS_SPACE_MEMORY = 0x00
PCI_BASE_ADDRESS_MEM_TYPE_32 = 0x00
PCI_BASE_ADDRESS_MEM_PREFETCH = 0x08
PCI_BASE_ADDRESS_MEM_MASK = ~0x0F
PCI_BASE_ADDRESS_IO_MASK = ~0x03
PCI_ROM_ADDRESS_ENABLE = 0x01
PCI_ROM_ADDRESS_MASK = ~0x7FF

PCI_PRIMARY_BUS = 0x18
PCI_IO_BASE = 0x1C
PCI_MEMORY_BASE = 0x20
PCI_PREF_MEMORY_BASE = 0x24
PCI_PREF_BASE_UPPER32 = 0x28
PCI_PREF_LIMIT_UPPER32 = 0x2C
PCI_IO_BASE_UPPER16 = 0x30
PCI_IO_RANGE_MASK = ~0x0F
PCI_IO_RANGE_TYPE_16 = 0x00
PCI_IO_RANGE_TYPE_32 = 0x01
PCI_MEMORY_RANGE_MASK = ~0x0F
PCI_PREF_RANGE_MASK = ~0x0F
PCI_PREF_RANGE_TYPE_32 = 0x00
PCI_PREF_RANGE_TYPE_64 = 0x01

PCI_CB_PRIMARY_BUS = 0x18
PCI_CB_MEMORY_BASE_0 = 0x1C
PCI_CB_MEMORY_LIMIT_0 = 0x20
PCI_CB_MEMORY_BASE_1 = 0x24
PCI_CB_MEMORY_LIMIT_1 = 0x28
PCI_CB_IO_BASE_0 = 0x2C
PCI_CB_IO_LIMIT_0 = 0x30
PCI_CB_IO_BASE_1 = 0x34
PCI_CB_IO_LIMIT_1 = 0x38
PCI_CB_IO_RANGE_MASK = ~0x03

PCI_CLASS_BRIDGE_PCI = 0x0604
PCI_CLASS_BRIDGE_CARDBUS = 0x0607

PCI_IORESOURCE_TYPE_BITS = 0x00001F00
PCI_IORESOURCE_IO = 0x00000100
PCI_IORESOURCE_MEM = 0x00000200
PCI_IORESOURCE_PREFETCH = 0x00002000
PCI_IORESOURCE_MEM_64 = 0x00100000
PCI_IORESOURCE_IO_16BIT_ADDR = 0x00000001

_HEADER_LIMIT = 64


def _ioflg_to_pciflg(ioflg: int) -> int:
    kind = ioflg & PCI_IORESOURCE_TYPE_BITS
    if kind == PCI_IORESOURCE_IO:
        return PCI_BASE_ADDRESS_SPACE_IO
    if kind == PCI_IORESOURCE_MEM:
        flg = PCI_BASE_ADDRESS_SPACE_MEMORY
        if ioflg & PCI_IORESOURCE_MEM_64:
            flg |= PCI_BASE_ADDRESS_MEM_TYPE_64
        else:
            flg |= PCI_BASE_ADDRESS_MEM_TYPE_32
        if ioflg & PCI_IORESOURCE_PREFETCH:
            flg |= PCI_BASE_ADDRESS_MEM_PREFETCH
        return flg
    return 0


def _baseres_to_pcires(addr: int, ioflg: int) -> tuple[int, Optional[int]]:
    """Return the BAR value and, for 64-bit memory BARs, the upper half."""
    val = _ioflg_to_pciflg(ioflg)
    upper = None
    space = val & PCI_BASE_ADDRESS_SPACE
    if space == PCI_BASE_ADDRESS_SPACE_IO and addr <= _U32:
        val |= addr & PCI_BASE_ADDRESS_IO_MASK
    elif space == PCI_BASE_ADDRESS_SPACE_MEMORY:
        val |= addr & PCI_BASE_ADDRESS_MEM_MASK
        if val & PCI_BASE_ADDRESS_MEM_TYPE_64:
            upper = (addr >> 32) & _U32
    return val & _U32, upper


def _even_bar(dev: Device, index: int) -> int:
    return _baseres_to_pcires(dev.base_addr[index], dev.flags[index])[0]


def _odd_bar(dev: Device, index: int) -> int:
    _, upper = _baseres_to_pcires(dev.base_addr[index - 1], dev.flags[index - 1])
    if upper is not None:
        return upper
    return _baseres_to_pcires(dev.base_addr[index], dev.flags[index])[0]


def _rom(dev: Device) -> int:
    val = dev.rom_base_addr & PCI_ROM_ADDRESS_MASK & _U32
    if val:
        val |= PCI_ROM_ADDRESS_ENABLE
    return val


def _header_type(dev: Device) -> int:
    if dev.device_class == PCI_CLASS_BRIDGE_PCI:
        return PCI_HEADER_TYPE_BRIDGE
    if dev.device_class == PCI_CLASS_BRIDGE_CARDBUS:
        return PCI_HEADER_TYPE_CARDBUS
    return PCI_HEADER_TYPE_NORMAL


def _common_register(dev: Device, reg: int, ht: int) -> int:
    val = 0
    if reg == PCI_COMMAND:
        for size, flags in zip(dev.size, dev.flags):
            if not size:
                continue
            kind = flags & PCI_IORESOURCE_TYPE_BITS
            if kind == PCI_IORESOURCE_IO:
                val |= PCI_COMMAND_IO
            elif kind == PCI_IORESOURCE_MEM:
                val |= PCI_COMMAND_MEMORY
    elif reg == PCI_VENDOR_ID:
        val = (dev.device_id << 16) | dev.vendor_id
    elif reg == PCI_CLASS_REVISION:
        val = (dev.device_class << 16) | (dev.prog_if << 8) | dev.rev_id
    elif reg == PCI_CACHE_LINE_SIZE:
        val = ht << 16
    elif reg == PCI_BASE_ADDRESS_0:
        val = _even_bar(dev, 0)
    elif reg == PCI_INTERRUPT_LINE:
        val = dev.irq if 0 <= dev.irq <= 0xFF else 0
    if reg == PCI_BASE_ADDRESS_1 and ht in (PCI_HEADER_TYPE_NORMAL, PCI_HEADER_TYPE_BRIDGE):
        val = _odd_bar(dev, 1)
    return val


def _normal_register(dev: Device, reg: int, val: int) -> int:
    if reg == PCI_BASE_ADDRESS_2:
        return _even_bar(dev, 2)
    if reg == PCI_BASE_ADDRESS_3:
        return _odd_bar(dev, 3)
    if reg == PCI_BASE_ADDRESS_4:
        return _even_bar(dev, 4)
    if reg == PCI_BASE_ADDRESS_5:
        return _odd_bar(dev, 5)
    if reg == PCI_SUBSYSTEM_VENDOR_ID:
        return (dev.subsys_id << 16) | dev.subsys_vendor_id
    if reg == PCI_ROM_ADDRESS:
        return _rom(dev)
    return val


def _bridge_register(dev: Device, reg: int, val: int) -> int:
    base, size, flags = dev.bridge_base_addr, dev.bridge_size, dev.bridge_flags
    if reg == PCI_COMMAND:
        if size[0]:
            val |= PCI_COMMAND_IO
        if size[1] or size[2]:
            val |= PCI_COMMAND_MEMORY
        return val
    if reg == PCI_PRIMARY_BUS:
        return dev.bus
    if reg == PCI_IO_BASE:
        if not size[0]:
            return 0xFF & PCI_IO_RANGE_MASK
        end = base[0] + size[0] - 1
        val = ((((end >> 8) & PCI_IO_RANGE_MASK) << 8) & 0xFF00) | (
            ((base[0] >> 8) & PCI_IO_RANGE_MASK) & 0x00FF
        )
        if flags[0] & PCI_IORESOURCE_IO_16BIT_ADDR and end <= 0xFFFF:
            val |= (PCI_IO_RANGE_TYPE_16 << 8) | PCI_IO_RANGE_TYPE_16
        else:
            val |= (PCI_IO_RANGE_TYPE_32 << 8) | PCI_IO_RANGE_TYPE_32
        return val
    if reg == PCI_MEMORY_BASE:
        if not size[1]:
            return 0xFFFF & PCI_MEMORY_RANGE_MASK
        end = base[1] + size[1] - 1
        return ((((end >> 16) & PCI_MEMORY_RANGE_MASK) << 16) & 0xFFFF0000) | (
            ((base[1] >> 16) & PCI_MEMORY_RANGE_MASK) & 0x0000FFFF
        )
    if reg == PCI_PREF_MEMORY_BASE:
        if not size[2]:
            return 0xFFFF & PCI_PREF_RANGE_MASK
        end = base[2] + size[2] - 1
        val = ((((end >> 16) & PCI_PREF_RANGE_MASK) << 16) & 0xFFFF0000) | (
            ((base[2] >> 16) & PCI_PREF_RANGE_MASK) & 0x0000FFFF
        )
        if flags[2] & PCI_IORESOURCE_MEM_64 or end > _U32:
            val |= (PCI_PREF_RANGE_TYPE_64 << 16) | PCI_PREF_RANGE_TYPE_64
        else:
            val |= (PCI_PREF_RANGE_TYPE_32 << 16) | PCI_PREF_RANGE_TYPE_32
        return val
    if reg == PCI_PREF_BASE_UPPER32:
        return base[2] >> 32 if size[2] else val
    if reg == PCI_PREF_LIMIT_UPPER32:
        return (base[2] + size[2] - 1) >> 32 if size[2] else val
    if reg == PCI_IO_BASE_UPPER16:
        if size[0]:
            end = base[0] + size[0] - 1
            return (((end >> 16) << 16) & 0xFFFF0000) | ((base[0] >> 16) & 0x0000FFFF)
        return val
    if reg == PCI_ROM_ADDRESS1:
        return _rom(dev)
    return val


def _cardbus_io(base: int, size: int, flags: int) -> int:
    val = base & PCI_CB_IO_RANGE_MASK
    if flags & PCI_IORESOURCE_IO_16BIT_ADDR or base + size - 1 <= 0xFFFF:
        val |= PCI_IO_RANGE_TYPE_16
    else:
        val |= PCI_IO_RANGE_TYPE_32
    return val


def _cardbus_register(dev: Device, reg: int, val: int) -> int:
    base, size, flags = dev.bridge_base_addr, dev.bridge_size, dev.bridge_flags
    if reg == PCI_COMMAND:
        if size[0] or size[1]:
            val |= PCI_COMMAND_MEMORY
        if size[2] or size[3]:
            val |= PCI_COMMAND_IO
        return val
    if reg == PCI_CB_PRIMARY_BUS:
        return dev.bus
    if reg in (PCI_CB_MEMORY_BASE_0, PCI_CB_MEMORY_BASE_1):
        i = 0 if reg == PCI_CB_MEMORY_BASE_0 else 1
        return base[i] & ~0xFFF if size[i] else _U32 & ~0xFFF
    if reg in (PCI_CB_MEMORY_LIMIT_0, PCI_CB_MEMORY_LIMIT_1):
        i = 0 if reg == PCI_CB_MEMORY_LIMIT_0 else 1
        return (base[i] + size[i] - 1) & ~0xFFF if size[i] else val
    if reg in (PCI_CB_IO_BASE_0, PCI_CB_IO_BASE_1):
        i = 2 if reg == PCI_CB_IO_BASE_0 else 3
        if size[i]:
            return _cardbus_io(base[i], size[i], flags[i])
        return 0x0000FFFF & PCI_CB_IO_RANGE_MASK
    if reg in (PCI_CB_IO_LIMIT_0, PCI_CB_IO_LIMIT_1):
        i = 2 if reg == PCI_CB_IO_LIMIT_0 else 3
        return (base[i] + size[i] - 1) & PCI_CB_IO_RANGE_MASK if size[i] else val
    # Bridge control and the CardBus subsystem IDs lie outside the emulated
    # dword-aligned window, so they always read as zero here.
    return val


def emulated_read(dev: Device, pos: int, length: int) -> Optional[bytes]:
    """Read the first 64 bytes of config space as the device's fields describe them.

    Returns None for positions beyond the standard header.
    """
    if pos >= _HEADER_LIMIT:
        return None
    if length > 4:
        return block_read(dev, pos, length)

    ht = _header_type(dev)
    reg = pos & ~3
    val = _common_register(dev, reg, ht)
    if ht == PCI_HEADER_TYPE_NORMAL:
        val = _normal_register(dev, reg, val)
    elif ht == PCI_HEADER_TYPE_BRIDGE:
        val = _bridge_register(dev, reg, val)
    else:
        val = _cardbus_register(dev, reg, val)
    val &= _U32

    if length <= 2:
        val >>= 8 * (pos & 3)
    if length <= 0:
        return b""
    return (val & ((1 << (8 * length)) - 1)).to_bytes(length, "little")