"""A simple lister of PCI devices built on the library."""

from __future__ import annotations

import getopt
import sys
from typing import Optional, Sequence

from pcilib.access import Access, Fill, PciError
from pcilib.methods import method_registry
from pcilib.options import UsageError, parse_generic_option

PCI_INTERRUPT_PIN = 0x3D
_PROGRAM = "example"


def main(argv: Optional[Sequence[str]] = None) -> int:
    """List devices with their IDs, class, IRQ, pin and first base address.

    Accepts the generic options -A, -F, -G and -O.
    """
    args = sys.argv[1:] if argv is None else list(argv)
    access = Access(method_registry())
    try:
        opts, _ = getopt.gnu_getopt(args, "A:F:GO:")
    except getopt.GetoptError as exc:
        print(f"{_PROGRAM}: {exc}", file=sys.stderr)
        return 2

    try:
        for opt, value in opts:
            parse_generic_option(opt[1:], access, value)
        access.init()
        access.scan_bus()
        for dev in access.devices:
            dev.fill_info(Fill.IDENT | Fill.BASES | Fill.CLASS)
            pin = dev.read_byte(PCI_INTERRUPT_PIN)
            print(
                f"{dev.domain:04x}:{dev.bus:02x}:{dev.dev:02x}.{dev.func} "
                f"vendor={dev.vendor_id:04x} device={dev.device_id:04x} "
                f"class={dev.device_class:04x} irq={dev.irq} (pin {pin}) "
                f"base0={dev.base_addr[0]:x} "
                f"({dev.vendor_id:04x}:{dev.device_id:04x})"
            )
        access.cleanup()
    except UsageError as exc:
        print(f"{_PROGRAM}: {exc}", file=sys.stderr)
        return 1
    except PciError as exc:
        print(f"pcilib: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())