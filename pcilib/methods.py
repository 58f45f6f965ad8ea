"""The table of access methods known to the library."""

from __future__ import annotations

from typing import Optional

from pcilib.access import AccessMethod
from pcilib.dump import DumpMethod

PCI_ACCESS_AUTO = 0
PCI_ACCESS_SYS_BUS_PCI = 1
PCI_ACCESS_PROC_BUS_PCI = 2
PCI_ACCESS_I386_TYPE1 = 3
PCI_ACCESS_I386_TYPE2 = 4
PCI_ACCESS_FBSD_DEVICE = 5
PCI_ACCESS_AIX_DEVICE = 6
PCI_ACCESS_NBSD_LIBPCI = 7
PCI_ACCESS_OBSD_DEVICE = 8
PCI_ACCESS_DUMP = 9
PCI_ACCESS_DARWIN = 10
PCI_ACCESS_SYLIXOS_DEVICE = 11
PCI_ACCESS_HURD = 12
PCI_ACCESS_WIN32_CFGMGR32 = 13
PCI_ACCESS_MAX = 14


def method_registry() -> list[Optional[AccessMethod]]:
    """Return a fresh table of methods indexed by access-method number.

    Slots of methods that are not available hold None.
    """
    registry: list[Optional[AccessMethod]] = [None] * PCI_ACCESS_MAX
    registry[PCI_ACCESS_DUMP] = DumpMethod()
    return registry


def lookup_method(name: str) -> Optional[int]:
    """Return the number of the method called ``name``, or None."""
    for index, method in enumerate(method_registry()):
        if method is not None and method.name == name:
            return index
    return None


def get_method_name(index: int) -> Optional[str]:
    """Return the method's name, "" for an unavailable slot, None out of range."""
    if index < 0 or index >= PCI_ACCESS_MAX:
        return None
    method = method_registry()[index]
    return method.name if method is not None else ""