"""Mapping of numeric IDs to names, and the on-disk cache of resolved names."""

from __future__ import annotations

import contextlib
import enum
import os
import re
import socket
from dataclasses import dataclass
from typing import Iterator, Optional

from pcilib.access import Access

try:
    import pwd
except ImportError:  # pragma: no cover - platforms without a password database
    pwd = None  # type: ignore[assignment]

CACHE_VERSION = "#PCI-CACHE-1.0"

_HEX = r"\s*([-+]?(?:0[xX])?[0-9a-fA-F]+)"
_CACHE_LINE_RE = re.compile(r"\s*([-+]?\d+)" + _HEX * 4)


class IdSource(enum.IntEnum):
    """Where a name came from; higher values are preferred."""

    UNKNOWN = 0
    CACHE = 1
    NET = 2
    HWDB = 3
    LOCAL = 4


class Lookup(enum.IntFlag):
    """Flags controlling what is looked up and which sources are consulted."""

    VENDOR = 0x1
    DEVICE = 0x2
    CLASS = 0x4
    SUBSYSTEM = 0x8
    PROGIF = 0x10
    NUMERIC = 0x10000
    NO_NUMBERS = 0x20000
    MIXED = 0x40000
    NETWORK = 0x80000
    SKIP_LOCAL = 0x100000
    CACHE = 0x200000
    REFRESH_CACHE = 0x400000
    NO_HWDB = 0x800000


@dataclass(frozen=True)
class _Entry:
    name: str
    src: IdSource


_Key = tuple[int, int, int, int, int]


def _skipped(src: IdSource, flags: int) -> bool:
    if src == IdSource.LOCAL and flags & Lookup.SKIP_LOCAL:
        return True
    if src == IdSource.NET and not flags & Lookup.NETWORK:
        return True
    if src == IdSource.CACHE and not flags & Lookup.CACHE:
        return True
    if src == IdSource.HWDB and flags & (Lookup.SKIP_LOCAL | Lookup.NO_HWDB):
        return True
    return False


class IdHash:
    """Names keyed by category and up to four IDs; the first insertion wins."""

    def __init__(self) -> None:
        self._entries: dict[_Key, _Entry] = {}

    def insert(
        self, cat: int, id1: int, id2: int, id3: int, id4: int, text: str, src: IdSource
    ) -> bool:
        """Store a name; return True if an entry for these IDs already existed."""
        key = (cat, id1, id2, id3, id4)
        if key in self._entries:
            return True
        self._entries[key] = _Entry(text, IdSource(src))
        return False

    def lookup(
        self, flags: int, cat: int, id1: int, id2: int, id3: int, id4: int
    ) -> Optional[str]:
        """Return the stored name unless its source is excluded by ``flags``."""
        entry = self._entries.get((cat, id1, id2, id3, id4))
        if entry is None or _skipped(entry.src, int(flags)):
            return None
        return entry.name

    def clear(self) -> None:
        """Forget all names."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[tuple[_Key, str, IdSource]]:
        for key, entry in self._entries.items():
            yield key, entry.name, entry.src


def _home_dir() -> Optional[str]:
    if pwd is None:
        return None
    try:
        return pwd.getpwuid(os.getuid()).pw_dir
    except (KeyError, AttributeError):
        return None


class IdCache:
    """The cache file of names resolved from the network.

    ``status`` is 0 when no cache is in use, 1 when it is loaded and clean,
    and 2 when it must be written back.
    """

    def __init__(self, access: Access, ids: Optional[IdHash] = None) -> None:
        self.access = access
        self.ids = IdHash() if ids is None else ids
        self.status = 0

    def _cache_name(self) -> Optional[str]:
        name = self.access.get_param("net.cache_name")
        if not name:
            return None
        if not name.startswith("~/"):
            return name
        home = _home_dir()
        if home is None:
            return name
        expanded = home + name[1:]
        self.access.set_param("net.cache_name", expanded)
        return expanded

    def load(self, flags: int = 0) -> bool:
        """Read cached names into the hash; True if a cache file was read."""
        access = self.access
        self.status = 1
        name = self._cache_name()
        if name is None:
            return False
        access.debug(f"Using cache {name}\n")
        if int(flags) & Lookup.REFRESH_CACHE:
            access.debug("Not loading cache, will refresh everything\n")
            self.status = 2
            return False

        try:
            handle = open(name, "rb")
        except OSError:
            access.debug("Cache file does not exist\n")
            return False

        with handle:
            try:
                for lino, raw in enumerate(handle, 1):
                    if raw.endswith(b"\n"):
                        line = raw[:-1].decode("utf-8", "surrogateescape")
                        if lino == 1:
                            if line != CACHE_VERSION:
                                access.debug(f"Unrecognized cache version {line}, ignoring\n")
                                break
                            continue
                        match = _CACHE_LINE_RE.match(line)
                        if match:
                            cat = int(match.group(1))
                            ids = [int(match.group(i), 16) for i in range(2, 6)]
                            text = line[match.end():].lstrip(" ")
                            self.ids.insert(cat, *ids, text, IdSource.CACHE)
                            continue
                    access.warning(f"Malformed cache file {name} (line {lino}), ignoring")
                    break
            except OSError:
                access.warning(f"Error while reading {name}")
        return True

    def flush(self) -> None:
        """Write cached and network-resolved names back if the cache is dirty."""
        access = self.access
        orig_status = self.status
        self.status = 0
        if orig_status < 2:
            return
        name = self._cache_name()
        if name is None:
            return

        try:
            hostname = socket.gethostname()
        except OSError:
            hostname = ""
        tmpname = f"{name}.tmp-{hostname}-{os.getpid()}"

        try:
            handle = open(tmpname, "wb")
        except OSError as exc:
            access.warning(f"Cannot write to {name}: {exc.strerror}")
            return
        access.debug(f"Writing cache to {name}\n")
        try:
            with handle:
                handle.write(f"{CACHE_VERSION}\n".encode())
                for (cat, id1, id2, id3, id4), text, src in self.ids:
                    if src not in (IdSource.CACHE, IdSource.NET) or not text:
                        continue
                    ids = " ".join(f"{i & 0xFFFF:x}" for i in (id1, id2, id3, id4))
                    handle.write(f"{cat} {ids} {text}\n".encode("utf-8", "surrogateescape"))
        except OSError:
            access.warning(f"Error writing {name}")

        try:
            os.replace(tmpname, name)
        except OSError as exc:
            access.warning(f"Cannot rename {tmpname} to {name}: {exc.strerror}")
            with contextlib.suppress(OSError):
                os.unlink(tmpname)

    def mark_dirty(self) -> None:
        """Note that the cache needs writing, if a cache is in use."""
        if self.status >= 1:
            self.status = 2