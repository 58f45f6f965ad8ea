import pytest

from pcilib.dump import DumpMethod
from pcilib.methods import (
    PCI_ACCESS_DUMP,
    PCI_ACCESS_MAX,
    get_method_name,
    lookup_method,
    method_registry,
)


def test_registry_layout():
    registry = method_registry()
    assert len(registry) == PCI_ACCESS_MAX
    assert registry[0] is None
    assert isinstance(registry[PCI_ACCESS_DUMP], DumpMethod)


def test_registry_is_fresh_each_time():
    first = method_registry()
    second = method_registry()
    assert second[PCI_ACCESS_DUMP].name == "dump"
    assert first[PCI_ACCESS_DUMP] is not second[PCI_ACCESS_DUMP]
    first[PCI_ACCESS_DUMP] = None
    third = method_registry()
    assert isinstance(third[PCI_ACCESS_DUMP], DumpMethod)
    assert len(third) == PCI_ACCESS_MAX


def test_lookup_method():
    assert lookup_method("dump") == PCI_ACCESS_DUMP
    assert lookup_method("no-such-method") is None


@pytest.mark.parametrize("index", [-1, PCI_ACCESS_MAX, 100])
def test_get_method_name_out_of_range(index):
    assert get_method_name(index) is None


def test_get_method_name():
    assert get_method_name(PCI_ACCESS_DUMP) == "dump"
    assert get_method_name(0) == ""


def test_names_round_trip():
    for index in range(PCI_ACCESS_MAX):
        name = get_method_name(index)
        if name:
            assert lookup_method(name) == index