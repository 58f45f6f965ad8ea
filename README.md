# pcilib

A pure-Python library for working with PCI configuration space. It has
no dependencies outside the standard library.

The modules are:

- `pcilib.access`: `Access` holds the parameters, the chosen access method
  and the device list. `Device` gives byte, word, long and block reads and
  writes, `fill_info` and string properties. `AccessMethod` is the base
  class for backends. Fatal errors raise `PciError`.
- `pcilib.caps`: walks the traditional and extended capability lists
  (`scan_caps`, `find_cap`, `find_cap_nr`).
- `pcilib.generic`: bus scanning, header decoding (IDs, class, subsystem,
  IRQ, BARs, ROM) and block access split into aligned 1, 2 and 4 byte
  operations. These work on top of any backend's `read`.
- `pcilib.emulated`: `emulated_read` builds the first 64 bytes of config
  space from the fields already known about a device. This is the default
  `AccessMethod.read`.
- `pcilib.filter`: `Filter` with `parse_slot`
  (`[[[domain]:][bus]:][slot][.[func]]`), `parse_id`
  (`[vendor]:[device][:class[:progif]]`, where `x` in the class stands for
  any digit) and `match`. An expression that cannot be parsed raises
  `FilterError`.
- `pcilib.dump`: `DumpMethod` and `parse_dump` read devices from text
  dumps in the format that `lspci -x` prints. A dump can hold up to 4096
  bytes of config space per device.
- `pcilib.names`: `IdHash` maps a category and up to four IDs to a name,
  keeping a source (`IdSource`) for each entry. `IdCache` loads and writes
  the `#PCI-CACHE-1.0` cache file named by the `net.cache_name` parameter.
- `pcilib.methods`: `method_registry`, `lookup_method` and `get_method_name`.
- `pcilib.options`: handling of the generic command-line options.
- `pcilib.example`: a small device lister.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Listing devices from a dump

```python
from pcilib.access import Access, Fill
from pcilib.methods import method_registry, lookup_method
from pcilib.filter import Filter

acc = Access(method_registry())
acc.method = lookup_method("dump")
acc.set_param("dump.name", "lspci-dump.txt")
acc.init()
acc.scan_bus()

flt = Filter()
flt.parse_id("8086:")

for dev in acc.devices:
    if flt.match(dev):
        dev.fill_info(Fill.IDENT | Fill.CLASS | Fill.BASES)
        print(f"{dev.bus:02x}:{dev.dev:02x}.{dev.func} "
              f"{dev.vendor_id:04x}:{dev.device_id:04x} class {dev.device_class:04x}")

acc.cleanup()
```

Reads past the bytes that a dump holds return `0xff`. Writing to a dump
raises `PciError`.

## Command-line example

The package installs a small lister. It prints every device together with
its address, vendor and device IDs, class, IRQ, interrupt pin and first
base address:

```
pcilib-example -F lspci-dump.txt
```

The dump method is the only registered method, and it is not tried during
automatic detection. Without `-F`, or without `-A dump` together with
`-O dump.name=...`, the lister reports that it cannot find a working access
method and exits with status 1.

## Generic options

Tools can pass their `-A`, `-O`, `-G` and `-F` options to
`pcilib.options.parse_generic_option(option, access, arg)`. It returns
`False` for any other option.

- `-A name` selects an access method. `-A help` prints the known methods
  and exits.
- `-O name=value` sets a parameter. `-O help` prints each parameter with
  its help text and current value, then exits.
- `-G` raises the debugging level.
- `-F file` selects the dump method and reads from `file`.

An unknown method or parameter, or a malformed `-O` argument, raises
`UsageError`.

## What the package does not do

- No backend reaches real hardware. There is no access through sysfs,
  `/proc`, I/O ports or operating-system device interfaces. Devices come
  only from dumps, or from an `AccessMethod` subclass that you write.
- There is no reader for the `pci.ids` database and no network lookup of
  names. `IdHash` only holds the names you insert or that `IdCache.load`
  reads from the cache file.
- The lister prints numeric IDs only, not names.