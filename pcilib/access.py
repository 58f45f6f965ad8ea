"""Access to PCI devices: the access object, devices and configuration-space I/O."""

from __future__ import annotations

import enum
import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional, Sequence

if TYPE_CHECKING:
    from pcilib.caps import Capability

DEFAULT_ID_FILE = "/usr/local/share/pci.ids"


class PciError(Exception):
    """A fatal error reported by the library."""


class Fill(enum.IntFlag):
    """Groups of device fields that an access method can fill in."""

    IDENT = 0x0001
    IRQ = 0x0002
    BASES = 0x0004
    ROM_BASE = 0x0008
    SIZES = 0x0010
    CLASS = 0x0020
    CAPS = 0x0040
    EXT_CAPS = 0x0080
    PHYS_SLOT = 0x0100
    MODULE_ALIAS = 0x0200
    LABEL = 0x0400
    NUMA_NODE = 0x0800
    IO_FLAGS = 0x1000
    DT_NODE = 0x2000
    IOMMU_GROUP = 0x4000
    BRIDGE_BASES = 0x8000
    RESCAN = 0x00010000
    CLASS_EXT = 0x00020000
    SUBSYS = 0x00040000
    PARENT = 0x00080000
    DRIVER = 0x00100000


class AccessMethod:
    """Base class of the ways of reaching PCI configuration space.

    ``params`` lists the (name, default, help) parameters the method
    declares. The default behaviour: scanning and filling go through the
    generic configuration-space code, reads are emulated from the device
    fields, writes are refused. ``probe_rank`` orders automatic detection;
    None excludes the method from it.
    """

    name: str = ""
    help: str = ""
    probe_rank: Optional[int] = None
    params: tuple[tuple[str, str, str], ...] = ()

    def config(self, access: Access) -> None:
        """Define the parameters the method understands."""
        for name, value, help_text in self.params:
            access.define_param(name, value, help_text)

    def detect(self, access: Access) -> bool:
        """Tell whether the method can be used: all its parameters are set."""
        return bool(self.params) and all(
            access.get_param(name) for name, _, _ in self.params
        )

    def init(self, access: Access) -> None:
        """Prepare the method for use, checking its parameters are defined."""
        for name, _, _ in self.params:
            if access.get_param(name) is None:
                access.error(f"{self.name}: parameter {name} is not defined.")

    def cleanup(self, access: Access) -> None:
        """Release the devices still bound to this method."""
        bound = [dev for dev in access.devices if dev.methods is self]
        for dev in bound:
            self.cleanup_dev(dev)
        access.devices = [dev for dev in access.devices if dev.methods is not self]

    def scan(self, access: Access) -> None:
        """Find devices and link them to ``access``."""
        from pcilib.generic import generic_scan

        generic_scan(access)

    def fill_info(self, dev: Device, flags: int) -> None:
        """Fill the requested device fields."""
        from pcilib.generic import generic_fill_info

        generic_fill_info(dev, flags)

    def read(self, dev: Device, pos: int, length: int) -> Optional[bytes]:
        """Read configuration space; None when the read fails."""
        from pcilib.emulated import emulated_read

        return emulated_read(dev, pos, length)

    def write(self, dev: Device, pos: int, data: bytes) -> bool:
        """Write configuration space; True on success."""
        dev.access.error(f"Writing through {self.name or 'this method'} is not supported.")
        return False

    def read_vpd(self, dev: Device, pos: int, length: int) -> Optional[bytes]:
        """Read vital product data; this method has none, so the result is None.

        A negative position or length is reported as an error.
        """
        if pos < 0 or length < 0:
            dev.access.error(f"Invalid VPD read: pos={pos}, len={length}")
        return None

    def init_dev(self, dev: Device) -> None:
        """Set up per-device state: a fresh device carries no method data."""
        dev.aux = None

    def cleanup_dev(self, dev: Device) -> None:
        """Release per-device state by dropping the method data."""
        dev.aux = None


@dataclass
class Param:
    """A named access parameter."""

    name: str
    value: str
    help: str


class Access:
    """Library state: parameters, the chosen access method and the devices."""

    def __init__(
        self,
        registry: Optional[Sequence[Optional[AccessMethod]]] = None,
        *,
        method: int = 0,
        writeable: bool = False,
        buscentric: bool = False,
        debugging: int = 0,
        id_file_name: Optional[str] = DEFAULT_ID_FILE,
    ) -> None:
        self.registry: list[Optional[AccessMethod]] = list(registry or ())
        self.method = method
        self.writeable = writeable
        self.buscentric = buscentric
        self.debugging = debugging
        self.id_file_name = id_file_name
        self.id_lookup_mode = 0
        self.devices: list[Device] = []
        self.methods: Optional[AccessMethod] = None
        self.warning_handler: Optional[Callable[[str], None]] = None
        self.debug_handler: Optional[Callable[[str], None]] = None
        self._params: dict[str, Param] = {}
        self.define_param("net.cache_name", "~/.pciids-cache", "Name of the ID cache file")
        self._configure()

    def _configure(self) -> None:
        for method in self.registry:
            if method is not None:
                method.config(self)

    # Parameters

    def define_param(self, name: str, value: str, help: str) -> None:
        """Declare a parameter with its default value."""
        self._params[name] = Param(name, value, help)

    def get_param(self, name: str) -> Optional[str]:
        """Return the value of a parameter, or None if it is not defined."""
        param = self._params.get(name)
        return param.value if param else None

    def set_param(self, name: str, value: str) -> None:
        """Set a defined parameter; KeyError if it is unknown."""
        try:
            self._params[name].value = value
        except KeyError:
            raise KeyError(name) from None

    def walk_params(self) -> Iterator[Param]:
        """Yield all defined parameters in order of definition."""
        yield from self._params.values()

    # Reporting

    def error(self, msg: str) -> None:
        """Report a fatal error."""
        raise PciError(msg)

    def warning(self, msg: str) -> None:
        """Report a warning."""
        if self.warning_handler is not None:
            self.warning_handler(msg)
        else:
            sys.stderr.write(f"pcilib: {msg}\n")

    def debug(self, msg: str) -> None:
        """Emit a debugging message when debugging is enabled."""
        if not self.debugging:
            return
        if self.debug_handler is not None:
            self.debug_handler(msg)
        else:
            sys.stdout.write(msg)

    # Method selection

    def _probe_order(self) -> list[tuple[int, AccessMethod]]:
        candidates = [
            (index, method)
            for index, method in enumerate(self.registry)
            if method is not None and method.probe_rank is not None
        ]
        return sorted(candidates, key=lambda item: item[1].probe_rank)

    def init(self, registry: Optional[Sequence[Optional[AccessMethod]]] = None) -> None:
        """Choose the access method (given or detected) and initialise it."""
        if registry is not None:
            self.registry = list(registry)
            self._configure()

        if self.method:
            if (
                self.method < 0
                or self.method >= len(self.registry)
                or self.registry[self.method] is None
            ):
                self.error("This access method is not supported.")
            self.methods = self.registry[self.method]
        else:
            for index, method in self._probe_order():
                self.debug(f"Trying method {method.name}...")
                if method.detect(self):
                    self.debug("...OK\n")
                    self.methods = method
                    self.method = index
                    break
                self.debug("...No.\n")
            else:
                self.error("Cannot find any working access method.")

        assert self.methods is not None
        self.debug(f"Decided to use {self.methods.name}\n")
        self.methods.init(self)

    def _require_methods(self) -> AccessMethod:
        if self.methods is None:
            self.error("No access method has been initialised.")
        assert self.methods is not None
        return self.methods

    # Devices

    def scan_bus(self) -> None:
        """Let the access method find the devices."""
        self._require_methods().scan(self)

    def alloc_dev(self) -> Device:
        """Create a device bound to the current access method."""
        dev = Device(self)
        if dev.methods is not None:
            dev.methods.init_dev(dev)
        return dev

    def get_dev(self, domain: int, bus: int, dev: int, func: int) -> Device:
        """Create a device at the given address (it is not linked)."""
        device = self.alloc_dev()
        device.domain = domain
        device.bus = bus
        device.dev = dev
        device.func = func
        return device

    def link_dev(self, dev: Device) -> None:
        """Put a device at the head of the device list."""
        self.devices.insert(0, dev)

    def cleanup(self) -> None:
        """Free all devices and shut the access method down."""
        for dev in self.devices:
            dev.free()
        self.devices.clear()
        if self.methods is not None:
            self.methods.cleanup(self)
        self._params.clear()
        self.id_file_name = None


@dataclass(eq=False)
class Device:
    """A PCI device and the fields known about it."""

    access: Access
    domain: int = 0
    bus: int = 0
    dev: int = 0
    func: int = 0
    methods: Optional[AccessMethod] = None
    known_fields: int = 0
    vendor_id: int = 0
    device_id: int = 0
    device_class: int = 0
    irq: int = 0
    base_addr: list[int] = field(default_factory=lambda: [0] * 6)
    size: list[int] = field(default_factory=lambda: [0] * 6)
    flags: list[int] = field(default_factory=lambda: [0] * 6)
    rom_base_addr: int = 0
    rom_size: int = 0
    phy_slot: Optional[str] = None
    module_alias: Optional[str] = None
    label: Optional[str] = None
    numa_node: int = -1
    hdrtype: int = -1
    subsys_vendor_id: int = 0
    subsys_id: int = 0
    prog_if: int = 0
    rev_id: int = 0
    bridge_base_addr: list[int] = field(default_factory=lambda: [0] * 4)
    bridge_size: list[int] = field(default_factory=lambda: [0] * 4)
    bridge_flags: list[int] = field(default_factory=lambda: [0] * 4)
    caps: list[Capability] = field(default_factory=list)
    properties: dict[int, str] = field(default_factory=dict)
    cache: bytearray = field(default_factory=bytearray)
    aux: Any = None

    def __post_init__(self) -> None:
        if self.methods is None:
            self.methods = self.access.methods

    @property
    def domain_16(self) -> int:
        """Domain number clamped to 16 bits."""
        return 0xFFFF if self.domain > 0xFFFF else self.domain

    def _method(self) -> AccessMethod:
        if self.methods is None:
            self.access.error("Device has no access method.")
        assert self.methods is not None
        return self.methods

    # Field bookkeeping used by access methods

    def want_fill(self, want: int, try_fields: int) -> bool:
        """Tell whether fields in ``try_fields`` still need filling, marking them known."""
        wanted = int(want) & int(try_fields)
        if self.known_fields & wanted == wanted:
            return False
        self.known_fields |= int(try_fields)
        return True

    def clear_fill(self, fields: int) -> None:
        """Mark fields as unknown again."""
        self.known_fields &= ~int(fields)

    # Reading

    def _read_data(self, pos: int, length: int) -> bytes:
        if pos & (length - 1):
            self.access.error(f"Unaligned read: pos={pos:02x}, len={length}")
        if pos + length <= len(self.cache):
            return bytes(self.cache[pos:pos + length])
        data = self._method().read(self, pos, length)
        return bytes(data) if data is not None else b"\xff" * length

    def read_byte(self, pos: int) -> int:
        return self._read_data(pos, 1)[0]

    def read_word(self, pos: int) -> int:
        return int.from_bytes(self._read_data(pos, 2), "little")

    def read_long(self, pos: int) -> int:
        return int.from_bytes(self._read_data(pos, 4), "little")

    def read_block(self, pos: int, length: int) -> Optional[bytes]:
        """Read a block directly through the access method; None on failure."""
        return self._method().read(self, pos, length)

    def read_vpd(self, pos: int, length: int) -> Optional[bytes]:
        """Read vital product data; None if unsupported or failed."""
        return self._method().read_vpd(self, pos, length)

    # Writing

    def _write_data(self, pos: int, data: bytes) -> bool:
        length = len(data)
        if pos & (length - 1):
            self.access.error(f"Unaligned write: pos={pos:02x},len={length}")
        if pos + length <= len(self.cache):
            self.cache[pos:pos + length] = data
        return self._method().write(self, pos, data)

    def write_byte(self, pos: int, data: int) -> bool:
        return self._write_data(pos, (data & 0xFF).to_bytes(1, "little"))

    def write_word(self, pos: int, data: int) -> bool:
        return self._write_data(pos, (data & 0xFFFF).to_bytes(2, "little"))

    def write_long(self, pos: int, data: int) -> bool:
        return self._write_data(pos, (data & 0xFFFFFFFF).to_bytes(4, "little"))

    def write_block(self, pos: int, data: bytes) -> bool:
        """Write a block, keeping the cached part of config space up to date."""
        data = bytes(data)
        if pos < len(self.cache):
            chunk = data[:len(self.cache) - pos]
            self.cache[pos:pos + len(chunk)] = chunk
        return self._method().write(self, pos, data)

    # Information

    def _reset_properties(self) -> None:
        self.known_fields = 0
        self.phy_slot = None
        self.module_alias = None
        self.label = None
        self.caps.clear()
        self.properties.clear()

    def fill_info(self, flags: int) -> int:
        """Ask the access method for the given fields; return the known fields."""
        flags = int(flags)
        if flags & Fill.RESCAN:
            flags &= ~int(Fill.RESCAN)
            self._reset_properties()
        if flags & ~self.known_fields:
            self._method().fill_info(self, flags)
        return self.known_fields

    def setup_cache(self, cache: bytes | bytearray) -> None:
        """Serve reads of the leading part of config space from ``cache``."""
        self.cache = cache if isinstance(cache, bytearray) else bytearray(cache)

    def set_property(self, key: int, value: Optional[str]) -> Optional[str]:
        """Set or (with None) remove a string property."""
        self.properties.pop(key, None)
        if value is None:
            return None
        self.properties[key] = value
        return value

    def get_string_property(self, key: int) -> Optional[str]:
        return self.properties.get(key)

    def free(self) -> None:
        """Release the device's method state, capabilities and properties."""
        if self.methods is not None:
            self.methods.cleanup_dev(self)
        self.caps.clear()
        self.properties.clear()