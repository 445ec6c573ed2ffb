"""Semantic checks: cell sizes, buses, unit addresses, chosen node and graphs."""

from __future__ import annotations

import string
from typing import Optional

from devtreecheck.checker import (
    Check,
    check_is_cell,
    check_is_string,
    check_is_string_list,
)
from devtreecheck.structural import add_structural_checks
from devtreecheck.tree import DtInfo, Node, Property, phandle_is_valid

_CELL_SIZE = 4

PCI_BUS = "PCI"
SIMPLE_BUS = "simple-bus"
I2C_BUS = "i2c-bus"
SPI_BUS = "spi-bus"
GRAPH_PORT_BUS = "graph-port"
GRAPH_PORTS_BUS = "graph-ports"

I2C_OWN_SLAVE_ADDRESS = 1 << 30
I2C_TEN_BIT_ADDRESS = 1 << 31

_ALIAS_CHARS = string.ascii_lowercase + string.digits + "-"


def _is_multiple_of(multiple: int, divisor: int) -> bool:
    if divisor == 0:
        return multiple == 0
    return multiple % divisor == 0


def node_addr_cells(node: Node) -> int:
    """The node's #address-cells, defaulting to 2."""
    return 2 if node.addr_cells == -1 else node.addr_cells


def node_size_cells(node: Node) -> int:
    """The node's #size-cells, defaulting to 1."""
    return 1 if node.size_cells == -1 else node.size_cells


def _first_string(prop: Property) -> str:
    strings = prop.strings()
    return strings[0] if strings else ""


def _cells(prop: Property) -> list[int]:
    return [prop.cell_n(i) for i in range(len(prop.val) // _CELL_SIZE)]


def _names_is_string_list(c: Check, dti: DtInfo, node: Node) -> None:
    for prop in node.properties:
        if not prop.name.endswith("-names"):
            continue
        c.data = prop.name
        check_is_string_list(c, dti, node)


def _alias_paths(c: Check, dti: DtInfo, node: Node) -> None:
    if node.name != "aliases":
        return
    for prop in node.properties:
        if prop.name in ("phandle", "linux,phandle"):
            continue
        target = _first_string(prop)
        if not len(prop.val) or dti.dt.get_node_by_path(target) is None:
            c.fail(dti, node, f"aliases property is not a valid node ({target})", prop)
            continue
        if any(ch not in _ALIAS_CHARS for ch in prop.name):
            c.fail(dti, node, "aliases property name must include only lowercase and '-'")


def _addr_size_cells(c: Check, dti: DtInfo, node: Node) -> None:
    node.addr_cells = -1
    node.size_cells = -1
    prop = node.get_property("#address-cells")
    if prop is not None and len(prop.val) >= _CELL_SIZE:
        node.addr_cells = prop.cell()
    prop = node.get_property("#size-cells")
    if prop is not None and len(prop.val) >= _CELL_SIZE:
        node.size_cells = prop.cell()


def _reg_format(c: Check, dti: DtInfo, node: Node) -> None:
    prop = node.get_property("reg")
    if prop is None:
        return
    if node.parent is None:
        c.fail(dti, node, "Root node has a \"reg\" property")
        return
    if len(prop.val) == 0:
        c.fail(dti, node, "property is empty", prop)
    addr_cells = node_addr_cells(node.parent)
    size_cells = node_size_cells(node.parent)
    entrylen = (addr_cells + size_cells) * _CELL_SIZE
    if not _is_multiple_of(len(prop.val), entrylen):
        c.fail(
            dti, node,
            f"property has invalid length ({len(prop.val)} bytes) "
            f"(#address-cells == {addr_cells}, #size-cells == {size_cells})",
            prop,
        )


def _ranges_format(c: Check, dti: DtInfo, node: Node) -> None:
    ranges = c.data
    prop = node.get_property(ranges)
    if prop is None:
        return
    if node.parent is None:
        c.fail(dti, node, f"Root node has a \"{ranges}\" property", prop)
        return
    p_addr = node_addr_cells(node.parent)
    p_size = node_size_cells(node.parent)
    c_addr = node_addr_cells(node)
    c_size = node_size_cells(node)
    entrylen = (p_addr + c_addr + c_size) * _CELL_SIZE
    length = len(prop.val)
    if length == 0:
        if p_addr != c_addr:
            c.fail(
                dti, node,
                f"empty \"{ranges}\" property but its #address-cells ({c_addr}) "
                f"differs from {node.parent.fullpath} ({p_addr})",
                prop,
            )
        if p_size != c_size:
            c.fail(
                dti, node,
                f"empty \"{ranges}\" property but its #size-cells ({c_size}) "
                f"differs from {node.parent.fullpath} ({p_size})",
                prop,
            )
    elif not _is_multiple_of(length, entrylen):
        c.fail(
            dti, node,
            f"\"{ranges}\" property has invalid length ({length} bytes) "
            f"(parent #address-cells == {p_addr}, child #address-cells == {c_addr}, "
            f"#size-cells == {c_size})",
            prop,
        )


def _pci_bridge(c: Check, dti: DtInfo, node: Node) -> None:
    prop = node.get_property("device_type")
    if prop is None or _first_string(prop) != "pci":
        return
    node.bus = PCI_BUS
    if node.basename not in ("pci", "pcie"):
        c.fail(dti, node, "node name is not \"pci\" or \"pcie\"")
    if node.get_property("ranges") is None:
        c.fail(dti, node, "missing ranges for PCI bridge (or not a bridge)")
    if node_addr_cells(node) != 3:
        c.fail(dti, node, "incorrect #address-cells for PCI bridge")
    if node_size_cells(node) != 2:
        c.fail(dti, node, "incorrect #size-cells for PCI bridge")
    prop = node.get_property("bus-range")
    if prop is None:
        return
    if len(prop.val) != 2 * _CELL_SIZE:
        c.fail(dti, node, "value must be 2 cells", prop)
        return
    low, high = prop.cell_n(0), prop.cell_n(1)
    if low > high:
        c.fail(dti, node, "1st cell must be less than or equal to 2nd cell", prop)
    if high > 0xFF:
        c.fail(dti, node, "maximum bus number must be less than 256", prop)


def _pci_device_bus_num(c: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.parent.bus != PCI_BUS:
        return
    prop = node.get_property("reg")
    if prop is None or len(prop.val) < _CELL_SIZE:
        return
    bus_num = (prop.cell() & 0x00FF0000) >> 16
    range_prop = node.parent.get_property("bus-range")
    if range_prop is None or len(range_prop.val) < 2 * _CELL_SIZE:
        min_bus = max_bus = 0
    else:
        min_bus, max_bus = range_prop.cell_n(0), range_prop.cell_n(1)
    if bus_num < min_bus or bus_num > max_bus:
        c.fail(
            dti, node,
            f"PCI bus number {bus_num} out of range, expected ({min_bus} - {max_bus})",
            range_prop,
        )


def _pci_device_reg(c: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.parent.bus != PCI_BUS:
        return
    prop = node.get_property("reg")
    if prop is None or len(prop.val) < 3 * _CELL_SIZE:
        return
    if prop.cell_n(1) or prop.cell_n(2):
        c.fail(dti, node, "PCI reg config space address cells 2 and 3 must be 0", prop)
    reg = prop.cell()
    dev = (reg & 0xF800) >> 11
    func = (reg & 0x700) >> 8
    if reg & 0xFF000000:
        c.fail(dti, node, "PCI reg address is not configuration space", prop)
    if reg & 0x000000FF:
        c.fail(dti, node, "PCI reg config space address register number must be 0", prop)
    unitname = node.unitname
    if func == 0 and unitname == f"{dev:x}":
        return
    unit_addr = f"{dev:x},{func:x}"
    if unitname == unit_addr:
        return
    c.fail(dti, node, f"PCI unit address format error, expected \"{unit_addr}\"")


def _simple_bus_bridge(c: Check, dti: DtInfo, node: Node) -> None:
    if node.is_compatible("simple-bus"):
        node.bus = SIMPLE_BUS


def _simple_bus_reg(c: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.parent.bus != SIMPLE_BUS:
        return
    cells: Optional[list[int]] = None
    prop = node.get_property("reg")
    if prop is not None:
        cells = _cells(prop)
    else:
        prop = node.get_property("ranges")
        if prop is not None and len(prop.val):
            cells = _cells(prop)[node_addr_cells(node):]
    if cells is None:
        if node.parent.parent is not None and node.bus != SIMPLE_BUS:
            c.fail(dti, node, "missing or empty reg/ranges property")
        return
    reg = 0
    for cell in cells[:node_addr_cells(node.parent)]:
        reg = ((reg << 32) | cell) & 0xFFFFFFFFFFFFFFFF
    unit_addr = f"{reg:x}"
    if node.unitname != unit_addr:
        c.fail(dti, node, f"simple-bus unit address format error, expected \"{unit_addr}\"")


def _i2c_bus_bridge(c: Check, dti: DtInfo, node: Node) -> None:
    base = node.basename
    if base in ("i2c-bus", "i2c-arb"):
        node.bus = I2C_BUS
    elif base == "i2c":
        n = len(base)
        for child in node.children:
            if n == len("i2c-bus") and child.name[:n] == "i2c-bus":
                return
        node.bus = I2C_BUS
    else:
        return
    if not node.children:
        return
    if node_addr_cells(node) != 1:
        c.fail(dti, node, "incorrect #address-cells for I2C bus")
    if node_size_cells(node) != 0:
        c.fail(dti, node, "incorrect #size-cells for I2C bus")


def _i2c_bus_reg(c: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.parent.bus != I2C_BUS:
        return
    prop = node.get_property("reg")
    if prop is None or len(prop.val) < _CELL_SIZE:
        c.fail(dti, node, "missing or empty reg property")
        return
    cells = _cells(prop)
    reg = cells[0] & ~I2C_OWN_SLAVE_ADDRESS
    unit_addr = f"{reg:x}"
    if node.unitname != unit_addr:
        c.fail(dti, node, f"I2C bus unit address format error, expected \"{unit_addr}\"")
    for cell in cells:
        reg = cell & ~I2C_OWN_SLAVE_ADDRESS
        if reg & I2C_TEN_BIT_ADDRESS and (reg & ~I2C_TEN_BIT_ADDRESS) > 0x3FF:
            c.fail(
                dti, node,
                f"I2C address must be less than 10-bits, got \"0x{reg:x}\"", prop,
            )
        elif reg > 0x7F:
            c.fail(
                dti, node,
                f"I2C address must be less than 7-bits, got \"0x{reg:x}\". "
                "Set I2C_TEN_BIT_ADDRESS for 10 bit addresses or fix the property",
                prop,
            )


def _spi_bus_bridge(c: Check, dti: DtInfo, node: Node) -> None:
    spi_addr_cells = 1
    if node.basename == "spi":
        node.bus = SPI_BUS
    else:
        if node_addr_cells(node) != 1 or node_size_cells(node) != 0:
            return
        if any(
            prop.name.startswith("spi-")
            for child in node.children
            for prop in child.properties
        ):
            node.bus = SPI_BUS
        if node.bus == SPI_BUS and node.get_property("reg") is not None:
            c.fail(dti, node, "node name for SPI buses should be 'spi'")
    if node.bus != SPI_BUS or not node.children:
        return
    if node.get_property("spi-slave") is not None:
        spi_addr_cells = 0
    if node_addr_cells(node) != spi_addr_cells:
        c.fail(dti, node, "incorrect #address-cells for SPI bus")
    if node_size_cells(node) != 0:
        c.fail(dti, node, "incorrect #size-cells for SPI bus")


def _spi_bus_reg(c: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.parent.bus != SPI_BUS:
        return
    if node.parent.get_property("spi-slave") is not None:
        return
    prop = node.get_property("reg")
    if prop is None or len(prop.val) < _CELL_SIZE:
        c.fail(dti, node, "missing or empty reg property")
        return
    unit_addr = f"{prop.cell():x}"
    if node.unitname != unit_addr:
        c.fail(dti, node, f"SPI bus unit address format error, expected \"{unit_addr}\"")


def _unit_address_format(c: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is not None and node.parent.bus:
        return
    unitname = node.unitname
    if not unitname:
        return
    if unitname.startswith("0x"):
        c.fail(dti, node, "unit name should not have leading \"0x\"")
        unitname = unitname[2:]
    if len(unitname) > 1 and unitname[0] == "0" and unitname[1] in string.hexdigits:
        c.fail(dti, node, "unit name should not have leading 0s")


def _avoid_default_addr_size(c: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None:
        return
    if node.get_property("reg") is None and node.get_property("ranges") is None:
        return
    if node.parent.addr_cells == -1:
        c.fail(dti, node, "Relying on default #address-cells value")
    if node.parent.size_cells == -1:
        c.fail(dti, node, "Relying on default #size-cells value")


def _avoid_unnecessary_addr_size(c: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.addr_cells < 0 or node.size_cells < 0:
        return
    if node.get_property("ranges") is not None or not node.children:
        return
    if not any(child.get_property("reg") is not None for child in node.children):
        c.fail(
            dti, node,
            "unnecessary #address-cells/#size-cells without \"ranges\" "
            "or child \"reg\" property",
        )


def _is_disabled(node: Node) -> bool:
    prop = node.get_property("status")
    return prop is not None and _first_string(prop) == "disabled"


def _unique_unit_address_common(
    c: Check, dti: DtInfo, node: Node, disable_check: bool
) -> None:
    if node.addr_cells < 0 or node.size_cells < 0 or not node.children:
        return
    for childa in node.children:
        addr_a = childa.unitname
        if not addr_a or (disable_check and _is_disabled(childa)):
            continue
        for childb in node.children:
            if childb is childa:
                break
            if disable_check and _is_disabled(childb):
                continue
            if addr_a == childb.unitname:
                c.fail(
                    dti, childb,
                    f"duplicate unit-address (also used in node {childa.fullpath})",
                )


def _unique_unit_address(c: Check, dti: DtInfo, node: Node) -> None:
    _unique_unit_address_common(c, dti, node, False)


def _unique_unit_address_if_enabled(c: Check, dti: DtInfo, node: Node) -> None:
    _unique_unit_address_common(c, dti, node, True)


def _obsolete_chosen_interrupt_controller(c: Check, dti: DtInfo, node: Node) -> None:
    if node is not dti.dt:
        return
    chosen = dti.dt.get_node_by_path("/chosen")
    if chosen is None:
        return
    prop = chosen.get_property("interrupt-controller")
    if prop is not None:
        c.fail(dti, node, "/chosen has obsolete \"interrupt-controller\" property", prop)


def _chosen_node_is_root(c: Check, dti: DtInfo, node: Node) -> None:
    if node.name == "chosen" and node.parent is not dti.dt:
        c.fail(dti, node, "chosen node must be at root node")


def _chosen_node_bootargs(c: Check, dti: DtInfo, node: Node) -> None:
    if node.name != "chosen":
        return
    prop = node.get_property("bootargs")
    if prop is None:
        return
    c.data = prop.name
    check_is_string(c, dti, node)


def _chosen_node_stdout_path(c: Check, dti: DtInfo, node: Node) -> None:
    if node.name != "chosen":
        return
    prop = node.get_property("stdout-path")
    if prop is None:
        prop = node.get_property("linux,stdout-path")
        if prop is None:
            return
        c.fail(dti, node, "Use 'stdout-path' instead", prop)
    c.data = prop.name
    check_is_string(c, dti, node)


def _graph_nodes(c: Check, dti: DtInfo, node: Node) -> None:
    for child in node.children:
        if not (child.basename == "endpoint"
                or child.get_property("remote-endpoint") is not None):
            continue
        node.bus = GRAPH_PORT_BUS
        parent = node.parent
        if parent is not None and not parent.bus and (
            parent.name == "ports" or node.get_property("reg") is not None
        ):
            parent.bus = GRAPH_PORTS_BUS
        break


def _graph_child_address(c: Check, dti: DtInfo, node: Node) -> None:
    if node.bus not in (GRAPH_PORTS_BUS, GRAPH_PORT_BUS):
        return
    count = 0
    for child in node.children:
        prop = child.get_property("reg")
        if prop is not None and len(prop.val) >= _CELL_SIZE and prop.cell() != 0:
            return
        count += 1
    if count == 1 and node.addr_cells != -1:
        c.fail(
            dti, node,
            f"graph node has single child node '{node.children[0].name}', "
            "#address-cells/#size-cells are not necessary",
        )


def _graph_reg(c: Check, dti: DtInfo, node: Node) -> None:
    prop = node.get_property("reg")
    if prop is None:
        return
    if len(prop.val) != _CELL_SIZE:
        c.fail(dti, node, "graph node malformed 'reg' property")
        return
    unit_addr = f"{prop.cell():x}"
    if node.unitname != unit_addr:
        c.fail(dti, node, f"graph node unit address error, expected \"{unit_addr}\"")
    parent = node.parent
    if parent.addr_cells != 1:
        c.fail(
            dti, node,
            f"graph node '#address-cells' is {parent.addr_cells}, must be 1",
            node.get_property("#address-cells"),
        )
    if parent.size_cells != 0:
        c.fail(
            dti, node,
            f"graph node '#size-cells' is {parent.size_cells}, must be 0",
            node.get_property("#size-cells"),
        )


def _graph_port(c: Check, dti: DtInfo, node: Node) -> None:
    if node.bus != GRAPH_PORT_BUS:
        return
    if node.basename != "port":
        c.fail(dti, node, "graph port node name should be 'port'")
    _graph_reg(c, dti, node)


def _remote_endpoint(c: Check, dti: DtInfo, endpoint: Node) -> Optional[Node]:
    prop = endpoint.get_property("remote-endpoint")
    if prop is None or len(prop.val) < _CELL_SIZE:
        return None
    phandle = prop.cell()
    if not phandle_is_valid(phandle):
        return None
    node = dti.dt.get_node_by_phandle(phandle)
    if node is None:
        c.fail(dti, endpoint, "graph phandle is not valid", prop)
    return node


def _graph_endpoint(c: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None or node.parent.bus != GRAPH_PORT_BUS:
        return
    if node.basename != "endpoint":
        c.fail(dti, node, "graph endpoint node name should be 'endpoint'")
    _graph_reg(c, dti, node)
    remote = _remote_endpoint(c, dti, node)
    if remote is None:
        return
    if _remote_endpoint(c, dti, remote) is not node:
        c.fail(
            dti, node,
            f"graph connection to node '{remote.fullpath}' is not bidirectional",
        )


def _add(checks, name, fn, *prereqs, data=None, warn=False, error=False) -> None:
    checks[name] = Check(
        name, fn, data, warn=warn, error=error,
        prereqs=[checks[p] for p in prereqs],
    )


def add_semantic_checks(checks: dict[str, Check]) -> dict[str, Check]:
    """Add the semantic checks to ``checks``, adding structural ones if missing."""
    if "node_name_format" not in checks:
        add_structural_checks(checks)
    _add(checks, "address_cells_is_cell", check_is_cell, data="#address-cells", warn=True)
    _add(checks, "size_cells_is_cell", check_is_cell, data="#size-cells", warn=True)
    for name, propname in (
        ("device_type_is_string", "device_type"),
        ("model_is_string", "model"),
        ("status_is_string", "status"),
        ("label_is_string", "label"),
    ):
        _add(checks, name, check_is_string, data=propname, warn=True)
    _add(checks, "compatible_is_string_list", check_is_string_list,
         data="compatible", warn=True)
    _add(checks, "names_is_string_list", _names_is_string_list, warn=True)
    _add(checks, "alias_paths", _alias_paths, warn=True)
    _add(checks, "addr_size_cells", _addr_size_cells,
         "address_cells_is_cell", "size_cells_is_cell", warn=True)
    _add(checks, "reg_format", _reg_format, "addr_size_cells", warn=True)
    _add(checks, "ranges_format", _ranges_format, "addr_size_cells",
         data="ranges", warn=True)
    _add(checks, "dma_ranges_format", _ranges_format, "addr_size_cells",
         data="dma-ranges", warn=True)
    _add(checks, "pci_bridge", _pci_bridge,
         "device_type_is_string", "addr_size_cells", warn=True)
    _add(checks, "pci_device_bus_num", _pci_device_bus_num,
         "reg_format", "pci_bridge", warn=True)
    _add(checks, "pci_device_reg", _pci_device_reg, "reg_format", "pci_bridge", warn=True)
    _add(checks, "simple_bus_bridge", _simple_bus_bridge,
         "addr_size_cells", "compatible_is_string_list", warn=True)
    _add(checks, "simple_bus_reg", _simple_bus_reg,
         "reg_format", "simple_bus_bridge", warn=True)
    _add(checks, "i2c_bus_bridge", _i2c_bus_bridge, "addr_size_cells", warn=True)
    _add(checks, "i2c_bus_reg", _i2c_bus_reg, "reg_format", "i2c_bus_bridge", warn=True)
    _add(checks, "spi_bus_bridge", _spi_bus_bridge, "addr_size_cells", warn=True)
    _add(checks, "spi_bus_reg", _spi_bus_reg, "reg_format", "spi_bus_bridge", warn=True)
    _add(checks, "unit_address_format", _unit_address_format,
         "node_name_format", "pci_bridge", "simple_bus_bridge", warn=True)
    _add(checks, "avoid_default_addr_size", _avoid_default_addr_size,
         "addr_size_cells", warn=True)
    _add(checks, "avoid_unnecessary_addr_size", _avoid_unnecessary_addr_size,
         "avoid_default_addr_size", warn=True)
    _add(checks, "unique_unit_address", _unique_unit_address,
         "avoid_default_addr_size", warn=True)
    _add(checks, "unique_unit_address_if_enabled", _unique_unit_address_if_enabled,
         "avoid_default_addr_size")
    _add(checks, "obsolete_chosen_interrupt_controller",
         _obsolete_chosen_interrupt_controller, warn=True)
    _add(checks, "chosen_node_is_root", _chosen_node_is_root, warn=True)
    _add(checks, "chosen_node_bootargs", _chosen_node_bootargs, warn=True)
    _add(checks, "chosen_node_stdout_path", _chosen_node_stdout_path, warn=True)
    _add(checks, "graph_nodes", _graph_nodes, warn=True)
    _add(checks, "graph_child_address", _graph_child_address, "graph_nodes", warn=True)
    _add(checks, "graph_port", _graph_port, "graph_nodes", warn=True)
    _add(checks, "graph_endpoint", _graph_endpoint, "graph_nodes", warn=True)
    return checks