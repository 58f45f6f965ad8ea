"""Selecting devices by slot address or by vendor, device and class IDs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pcilib.access import Device, Fill

_MAX_EXPR = 64


class FilterError(ValueError):
    """A filter expression could not be parsed."""


def _split(text: str, sep: str, count: int) -> list[Optional[str]]:
    parts = text.split(sep)
    if len(parts) > count:
        raise FilterError("Too many fields")
    return [*parts, *([None] * (count - len(parts)))]


def _defined(text: Optional[str]) -> bool:
    return bool(text) and text != "*"


def _parse_hex(
    text: Optional[str], limit: int, allow_mask: bool = False
) -> Optional[tuple[int, int]]:
    """Parse a hex field; None if undefined, ValueError if invalid.

    With ``allow_mask``, an ``x`` stands for any digit and the returned
    mask has zero bits in its place.
    """
    if not _defined(text):
        return None
    assert text is not None
    out = 0
    mask = 0xFFFFFFFF
    bound = 0
    for c in text:
        if c in "xX" and allow_mask:
            out <<= 4
            bound = (bound << 4) | 1
            mask = (mask << 4) & 0xFFFFFFFF
        else:
            if c not in "0123456789abcdefABCDEF":
                raise ValueError(c)
            digit = int(c, 16)
            out = (out << 4) | digit
            bound = (bound << 4) | digit
            mask = ((mask << 4) | 0xF) & 0xFFFFFFFF
        if bound > limit:
            raise ValueError(text)
    return out, mask


@dataclass
class Filter:
    """Device filter; -1 in a field means any value."""

    domain: int = -1
    bus: int = -1
    slot: int = -1
    func: int = -1
    vendor: int = -1
    device: int = -1
    device_class: int = -1
    device_class_mask: int = 0xFFFFFFFF
    prog_if: int = -1

    def _set(self, attr: str, text: Optional[str], limit: int, message: str) -> None:
        try:
            parsed = _parse_hex(text, limit)
        except ValueError:
            raise FilterError(message) from None
        if parsed is not None:
            setattr(self, attr, parsed[0])

    def parse_slot(self, text: str) -> None:
        """Parse ``[[[domain]:][bus]:][slot][.[func]]``."""
        if len(text) >= _MAX_EXPR:
            raise FilterError("Expression too long")
        fields = _split(text, ":", 3)
        i = 0
        if fields[2] is not None:
            self._set("domain", fields[0], 0x7FFFFFFF, "Invalid domain number")
            i += 1
        if fields[i + 1] is not None:
            self._set("bus", fields[i], 0xFF, "Invalid bus number")
            i += 1
        fdev = fields[i]
        if _defined(fdev):
            assert fdev is not None
            try:
                slot, func = _split(fdev, ".", 2)
            except FilterError:
                raise FilterError("Invalid slot/function number") from None
            self._set("slot", slot, 0x1F, "Invalid slot number")
            self._set("func", func, 7, "Invalid function number")

    def parse_id(self, text: str) -> None:
        """Parse ``[vendor]:[device][:class[:progif]]``."""
        if len(text) >= _MAX_EXPR:
            raise FilterError("Expression too long")
        fields = _split(text, ":", 4)
        if fields[1] is None:
            raise FilterError("At least two fields must be given")
        self._set("vendor", fields[0], 0xFFFF, "Invalid vendor ID")
        self._set("device", fields[1], 0xFFFF, "Invalid device ID")
        try:
            parsed = _parse_hex(fields[2], 0xFFFF, allow_mask=True)
        except ValueError:
            raise FilterError("Invalid class code") from None
        if parsed is not None:
            self.device_class, self.device_class_mask = parsed
        self._set("prog_if", fields[3], 0xFF, "Invalid programming interface code")

    def match(self, dev: Device) -> bool:
        """Tell whether a device passes the filter."""
        if (
            (self.domain >= 0 and self.domain != dev.domain)
            or (self.bus >= 0 and self.bus != dev.bus)
            or (self.slot >= 0 and self.slot != dev.dev)
            or (self.func >= 0 and self.func != dev.func)
        ):
            return False
        if self.device >= 0 or self.vendor >= 0:
            dev.fill_info(Fill.IDENT)
            if (self.device >= 0 and self.device != dev.device_id) or (
                self.vendor >= 0 and self.vendor != dev.vendor_id
            ):
                return False
        if self.device_class >= 0:
            dev.fill_info(Fill.CLASS)
            if (self.device_class ^ dev.device_class) & self.device_class_mask:
                return False
        if self.prog_if >= 0:
            dev.fill_info(Fill.CLASS_EXT)
            if self.prog_if != dev.prog_if:
                return False
        return True