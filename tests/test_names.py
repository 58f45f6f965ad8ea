import pytest

from pcilib.access import Access
from pcilib.names import CACHE_VERSION, IdCache, IdHash, IdSource, Lookup


def test_insert_and_lookup():
    ids = IdHash()
    assert ids.insert(1, 0x8086, 0, 0, 0, "Intel", IdSource.LOCAL) is False
    assert ids.lookup(0, 1, 0x8086, 0, 0, 0) == "Intel"
    assert ids.lookup(0, 2, 0x8086, 0, 0, 0) is None


def test_first_insertion_wins():
    ids = IdHash()
    ids.insert(1, 5, 6, 0, 0, "first", IdSource.LOCAL)
    assert ids.insert(1, 5, 6, 0, 0, "second", IdSource.LOCAL) is True
    assert ids.lookup(0, 1, 5, 6, 0, 0) == "first"
    assert len(ids) == 1


@pytest.mark.parametrize(
    "src, hidden_by, shown_by",
    [
        (IdSource.LOCAL, Lookup.SKIP_LOCAL, 0),
        (IdSource.NET, 0, Lookup.NETWORK),
        (IdSource.CACHE, 0, Lookup.CACHE),
        (IdSource.HWDB, Lookup.NO_HWDB, 0),
        (IdSource.HWDB, Lookup.SKIP_LOCAL, 0),
    ],
)
def test_source_filtering(src, hidden_by, shown_by):
    ids = IdHash()
    ids.insert(3, 1, 2, 3, 4, "name", src)
    assert ids.lookup(hidden_by, 3, 1, 2, 3, 4) is None
    assert ids.lookup(shown_by, 3, 1, 2, 3, 4) == "name"


def test_clear():
    ids = IdHash()
    ids.insert(1, 1, 0, 0, 0, "x", IdSource.LOCAL)
    ids.clear()
    assert len(ids) == 0
    assert ids.lookup(0, 1, 1, 0, 0, 0) is None


@pytest.fixture
def access(tmp_path):
    acc = Access()
    acc.set_param("net.cache_name", str(tmp_path / "cache"))
    acc.warnings = []
    acc.warning_handler = acc.warnings.append
    return acc


def test_flush_and_load_round_trip(access, tmp_path):
    cache = IdCache(access)
    assert cache.load() is False
    assert cache.status == 1
    cache.ids.insert(1, 0x8086, 0, 0, 0, "Intel", IdSource.NET)
    cache.ids.insert(2, 0x8086, 0x1234, 0, 0, "Widget", IdSource.CACHE)
    cache.ids.insert(1, 0x10DE, 0, 0, 0, "Local only", IdSource.LOCAL)
    cache.ids.insert(1, 0x1002, 0, 0, 0, "", IdSource.NET)
    cache.mark_dirty()
    assert cache.status == 2
    cache.flush()
    assert cache.status == 0
    assert [p.name for p in tmp_path.iterdir()] == ["cache"]

    lines = (tmp_path / "cache").read_text().splitlines()
    assert lines[0] == CACHE_VERSION
    assert "1 8086 0 0 0 Intel" in lines
    assert len(lines) == 3

    fresh = IdCache(access)
    assert fresh.load() is True
    assert fresh.ids.lookup(Lookup.CACHE, 1, 0x8086, 0, 0, 0) == "Intel"
    assert fresh.ids.lookup(Lookup.CACHE, 2, 0x8086, 0x1234, 0, 0) == "Widget"
    assert fresh.ids.lookup(Lookup.CACHE, 1, 0x10DE, 0, 0, 0) is None
    assert fresh.ids.lookup(0, 1, 0x8086, 0, 0, 0) is None


def test_flush_skipped_when_clean(access, tmp_path):
    cache = IdCache(access)
    cache.load()
    cache.ids.insert(1, 1, 0, 0, 0, "n", IdSource.NET)
    cache.flush()
    assert cache.status == 0
    assert not (tmp_path / "cache").exists()
    fresh = IdCache(access)
    assert fresh.load() is False
    assert len(fresh.ids) == 0


def test_mark_dirty_needs_active_cache(access):
    cache = IdCache(access)
    cache.mark_dirty()
    assert cache.status == 0


def test_refresh_flag(access, tmp_path):
    (tmp_path / "cache").write_text(f"{CACHE_VERSION}\n1 1 0 0 0 old\n")
    cache = IdCache(access)
    assert cache.load(Lookup.REFRESH_CACHE) is False
    assert cache.status == 2
    assert len(cache.ids) == 0


def test_unknown_version_ignored(access, tmp_path):
    (tmp_path / "cache").write_text("#PCI-CACHE-0.9\n1 1 2 3 4 X\n")
    cache = IdCache(access)
    assert cache.load() is True
    assert len(cache.ids) == 0
    assert access.warnings == []


def test_malformed_line_warns(access, tmp_path):
    (tmp_path / "cache").write_text(f"{CACHE_VERSION}\n1 1 0 0 0 good\nbad line\n1 2 0 0 0 late\n")
    cache = IdCache(access)
    assert cache.load() is True
    assert cache.ids.lookup(Lookup.CACHE, 1, 1, 0, 0, 0) == "good"
    assert cache.ids.lookup(Lookup.CACHE, 1, 2, 0, 0, 0) is None
    assert len(access.warnings) == 1
    assert "Malformed cache file" in access.warnings[0]
    assert "(line 3)" in access.warnings[0]


def test_no_cache_name(tmp_path):
    acc = Access()
    acc.set_param("net.cache_name", "")
    cache = IdCache(acc)
    assert cache.load() is False
    assert cache.status == 1