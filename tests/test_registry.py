import pytest

from devtreecheck.registry import CheckRegistry, ChecksFailed
from devtreecheck.tree import DtInfo, Node


@pytest.fixture
def registry():
    return CheckRegistry()


def _empty_tree():
    return DtInfo(dt=Node(""))


def test_names_order_and_uniqueness(registry):
    names = registry.names()
    assert names[0] == "duplicate_node_names"
    assert names[-1] == "always_fail"
    assert len(names) == len(set(names))
    assert names.index("addr_size_cells") < names.index("reg_format")


def test_get_returns_named_check(registry):
    check = registry.get("reg_format")
    assert check.name == "reg_format"
    assert check.warn is True
    assert check.error is False


def test_get_unknown_raises(registry):
    with pytest.raises(KeyError):
        registry.get("no_such_check")


def test_default_levels(registry):
    assert registry.get("always_fail").warn is False
    assert registry.get("always_fail").error is False
    assert registry.get("duplicate_node_names").error is True


def test_enable_raises_prerequisites(registry):
    registry.parse_option(False, True, "unique_unit_address_if_enabled")
    assert registry.get("unique_unit_address_if_enabled").error is True
    assert registry.get("avoid_default_addr_size").error is True
    assert registry.get("addr_size_cells").error is True
    assert registry.get("address_cells_is_cell").error is True


def test_disable_lowers_dependents(registry):
    registry.parse_option(True, False, "no-addr_size_cells")
    assert registry.get("addr_size_cells").warn is False
    assert registry.get("reg_format").warn is False
    assert registry.get("pci_device_bus_num").warn is False
    assert registry.get("avoid_unnecessary_addr_size").warn is False
    # Unrelated checks keep their level.
    assert registry.get("alias_paths").warn is True


def test_disable_with_underscore_prefix(registry):
    registry.parse_option(True, False, "no_alias_paths")
    assert registry.get("alias_paths").warn is False


def test_unknown_option_raises(registry):
    with pytest.raises(ValueError, match="Unrecognized check name"):
        registry.parse_option(True, False, "bogus")


def test_unknown_negated_option_raises(registry):
    with pytest.raises(ValueError, match="bogus"):
        registry.parse_option(True, False, "no-bogus")


def test_process_clean_tree(registry):
    assert registry.process(False, _empty_tree()) is False


def test_process_error_raises(registry):
    registry.parse_option(False, True, "always_fail")
    with pytest.raises(ChecksFailed):
        registry.process(False, _empty_tree())


def test_process_error_forced(registry, capsys):
    registry.parse_option(False, True, "always_fail")
    assert registry.process(True, _empty_tree()) is True
    err = capsys.readouterr().err
    assert "output forced" in err
    assert "always_fail" in err


def test_process_warning_only_is_not_error(registry, capsys):
    registry.parse_option(True, False, "always_fail")
    assert registry.process(False, _empty_tree()) is False
    assert "Warning (always_fail)" in capsys.readouterr().err


def test_registries_are_independent():
    first = CheckRegistry()
    second = CheckRegistry()
    first.parse_option(True, False, "always_fail")
    assert first.get("always_fail").warn is True
    assert second.get("always_fail").warn is False