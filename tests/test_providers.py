from devtreecheck.checker import CheckStatus
from devtreecheck.data import Data
from devtreecheck.providers import add_provider_checks
from devtreecheck.tree import DtInfo, Node, Property


def cells(name, *values):
    d = Data()
    for v in values:
        d.append_cell(v)
    return Property(name, d)


def run(root, name):
    checks = add_provider_checks({})
    check = checks[name]
    check.run(DtInfo(root))
    return check


def clock_tree(with_cells=True):
    root = Node()
    clk = root.add_child(Node("clk"))
    clk.add_property(cells("phandle", 1))
    if with_cells:
        clk.add_property(cells("#clock-cells", 1))
    root.add_child(Node("dev")).add_property(cells("clocks", 1, 0))
    return root


def test_clocks_valid():
    assert run(clock_tree(), "clocks_property").status is CheckStatus.PASSED


def test_clocks_missing_cells_property():
    check = run(clock_tree(with_cells=False), "clocks_property")
    assert check.status is CheckStatus.FAILED
    assert "Missing property '#clock-cells'" in check.messages[0]


def test_msi_parent_cells_optional():
    root = Node()
    root.add_child(Node("msi")).add_property(cells("phandle", 1))
    root.add_child(Node("dev")).add_property(cells("msi-parent", 1))
    assert run(root, "msi_parent_property").status is CheckStatus.PASSED


def test_unknown_phandle():
    root = Node()
    root.add_child(Node("dev")).add_property(cells("clocks", 7))
    check = run(root, "clocks_property")
    assert "Could not get phandle node for (cell 0)" in check.messages[0]


def test_interrupts_missing_parent():
    root = Node()
    root.add_child(Node("dev")).add_property(cells("interrupts", 3))
    check = run(root, "interrupts_property")
    assert "Missing interrupt-parent" in check.messages[0]


def test_interrupts_via_ancestor_controller():
    root = Node()
    intc = root.add_child(Node("intc"))
    intc.add_property(Property("interrupt-controller"))
    intc.add_property(cells("#interrupt-cells", 2))
    intc.add_child(Node("dev")).add_property(cells("interrupts", 3, 4))
    assert run(root, "interrupts_property").status is CheckStatus.PASSED


def test_interrupt_provider_missing_cells():
    root = Node()
    root.add_child(Node("intc")).add_property(Property("interrupt-controller"))
    check = run(root, "interrupt_provider")
    assert "Missing '#interrupt-cells'" in check.messages[0]


def test_deprecated_gpio():
    root = Node()
    root.add_child(Node("dev")).add_property(cells("reset-gpio", 0))
    assert run(root, "deprecated_gpio_property").status is CheckStatus.FAILED


def test_registration_prereqs():
    checks = add_provider_checks({})
    names = [p.name for p in checks["clocks_property"].prereqs]
    assert names == ["clocks_is_cell", "phandle_references"]
    assert checks["interrupts_property"].prereqs == []