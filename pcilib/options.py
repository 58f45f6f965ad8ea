"""Command-line options shared by the PCI tools."""

from __future__ import annotations

import contextlib

from pcilib.access import Access
from pcilib.methods import PCI_ACCESS_DUMP


class UsageError(Exception):
    """An option given on the command line cannot be honoured."""


def set_pci_method(access: Access, arg: str) -> None:
    """Select the access method by name; ``help`` lists them and exits."""
    if arg == "help":
        print("Known PCI access methods:\n")
        for method in access.registry:
            if method is not None and method.name:
                print(method.name)
        raise SystemExit(0)
    for index, method in enumerate(access.registry):
        if method is not None and method.name == arg:
            access.method = index
            return
    raise UsageError(f"No such PCI access method: {arg} (see `-A help' for a list)")


def set_pci_option(access: Access, arg: str) -> None:
    """Set an access parameter given as ``name=value``; ``help`` lists them and exits."""
    if arg == "help":
        print("Known PCI access parameters:\n")
        for param in access.walk_params():
            print(f"{param.name:<20} {param.help} ({param.value})")
        raise SystemExit(0)
    name, sep, value = arg.partition("=")
    if not sep:
        raise UsageError(f"Invalid PCI access parameter syntax: {arg}")
    try:
        access.set_param(name, value)
    except KeyError:
        raise UsageError(
            f"Unrecognized PCI access parameter: {name} (see `-O help' for a list)"
        ) from None


def parse_generic_option(option: str, access: Access, arg: str) -> bool:
    """Handle one of the generic options; return False if it is not one of them."""
    if option == "F":
        with contextlib.suppress(KeyError):
            access.set_param("dump.name", arg)
        access.method = PCI_ACCESS_DUMP
    elif option == "A":
        set_pci_method(access, arg)
    elif option == "G":
        access.debugging += 1
    elif option == "O":
        set_pci_option(access, arg)
    else:
        return False
    return True