"""Checks of phandle-plus-arguments properties, GPIOs and interrupts."""

from __future__ import annotations

from dataclasses import dataclass

from devtreecheck.checker import Check, check_is_cell
from devtreecheck.data import MarkerType
from devtreecheck.semantic import add_semantic_checks, node_addr_cells
from devtreecheck.tree import DtInfo, Node, Property, phandle_is_valid

_CELL_SIZE = 4


@dataclass(frozen=True)
class _Provider:
    prop_name: str
    cell_name: str
    optional: bool = False


_PROVIDERS = (
    ("clocks", _Provider("clocks", "#clock-cells")),
    ("cooling_device", _Provider("cooling-device", "#cooling-cells")),
    ("dmas", _Provider("dmas", "#dma-cells")),
    ("hwlocks", _Provider("hwlocks", "#hwlock-cells")),
    ("interrupts_extended", _Provider("interrupts-extended", "#interrupt-cells")),
    ("io_channels", _Provider("io-channels", "#io-channel-cells")),
    ("iommus", _Provider("iommus", "#iommu-cells")),
    ("mboxes", _Provider("mboxes", "#mbox-cells")),
    ("msi_parent", _Provider("msi-parent", "#msi-cells", True)),
    ("mux_controls", _Provider("mux-controls", "#mux-control-cells")),
    ("phys", _Provider("phys", "#phy-cells")),
    ("power_domains", _Provider("power-domains", "#power-domain-cells")),
    ("pwms", _Provider("pwms", "#pwm-cells")),
    ("resets", _Provider("resets", "#reset-cells")),
    ("sound_dai", _Provider("sound-dai", "#sound-dai-cells")),
    ("thermal_sensors", _Provider("thermal-sensors", "#thermal-sensor-cells")),
)


def _cell_or_zero(prop: Property) -> int:
    return prop.cell() if len(prop.val) >= _CELL_SIZE else 0


def _property_phandle_args(
    c: Check, dti: DtInfo, node: Node, prop: Property, provider: _Provider
) -> None:
    length = len(prop.val)
    if length % _CELL_SIZE:
        c.fail(
            dti, node,
            f"property size ({length}) is invalid, expected multiple of {_CELL_SIZE}",
            prop,
        )
        return
    cell = 0
    while cell < length // _CELL_SIZE:
        phandle = prop.cell_n(cell)
        if not phandle_is_valid(phandle):
            if dti.plugin:
                break
            cell += 1
            continue
        if prop.val.markers and not any(
            m.offset == cell * _CELL_SIZE
            for m in prop.val.markers_of_type(MarkerType.REF_PHANDLE)
        ):
            c.fail(dti, node, f"cell {cell} is not a phandle reference", prop)
        provider_node = dti.dt.get_node_by_phandle(phandle)
        if provider_node is None:
            c.fail(dti, node, f"Could not get phandle node for (cell {cell})", prop)
            break
        cellprop = provider_node.get_property(provider.cell_name)
        if cellprop is not None:
            cellsize = _cell_or_zero(cellprop)
        elif provider.optional:
            cellsize = 0
        else:
            c.fail(
                dti, node,
                f"Missing property '{provider.cell_name}' in node "
                f"{provider_node.fullpath} or bad phandle "
                f"(referred from {prop.name}[{cell}])",
            )
            break
        if length < (cell + cellsize + 1) * _CELL_SIZE:
            c.fail(
                dti, node,
                f"property size ({length}) too small for cell size {cellsize}",
                prop,
            )
        cell += cellsize + 1


def _provider_cells_property(c: Check, dti: DtInfo, node: Node) -> None:
    provider: _Provider = c.data
    prop = node.get_property(provider.prop_name)
    if prop is not None:
        _property_phandle_args(c, dti, node, prop, provider)


def _prop_is_gpio(prop: Property) -> bool:
    name = prop.name
    if name.endswith(",nr-gpios"):
        return False
    return (name.endswith("-gpios") or name == "gpios"
            or name.endswith("-gpio") or name == "gpio")


def _gpios_property(c: Check, dti: DtInfo, node: Node) -> None:
    if node.get_property("gpio-hog") is not None:
        return
    for prop in node.properties:
        if _prop_is_gpio(prop):
            _property_phandle_args(
                c, dti, node, prop, _Provider(prop.name, "#gpio-cells")
            )


def _deprecated_gpio_property(c: Check, dti: DtInfo, node: Node) -> None:
    for prop in node.properties:
        if _prop_is_gpio(prop) and prop.name.endswith("gpio"):
            c.fail(dti, node, "'[*-]gpio' is deprecated, use '[*-]gpios' instead", prop)


def _is_interrupt_provider(node: Node) -> bool:
    return (node.get_property("interrupt-controller") is not None
            or node.get_property("interrupt-map") is not None)


def _interrupt_provider(c: Check, dti: DtInfo, node: Node) -> None:
    provider = _is_interrupt_provider(node)
    has_cells = node.get_property("#interrupt-cells") is not None
    if provider and not has_cells:
        c.fail(dti, node, "Missing '#interrupt-cells' in interrupt provider")
    elif not provider and has_cells:
        c.fail(dti, node, "'#interrupt-cells' found, but node is not an interrupt provider")


def _interrupt_map(c: Check, dti: DtInfo, node: Node) -> None:
    map_prop = node.get_property("interrupt-map")
    if map_prop is None:
        return
    if node.addr_cells < 0:
        c.fail(dti, node, "Missing '#address-cells' in interrupt-map provider")
        return
    cellsize = node_addr_cells(node)
    irq_cells = node.get_property("#interrupt-cells")
    if irq_cells is not None:
        cellsize += _cell_or_zero(irq_cells)

    mask = node.get_property("interrupt-map-mask")
    if mask is not None and len(mask.val) != cellsize * _CELL_SIZE:
        c.fail(
            dti, node,
            f"property size ({len(mask.val)}) is invalid, "
            f"expected {cellsize * _CELL_SIZE}",
            mask,
        )
    length = len(map_prop.val)
    if length % _CELL_SIZE:
        c.fail(
            dti, node,
            f"property size ({length}) is invalid, expected multiple of {_CELL_SIZE}",
            map_prop,
        )
        return
    map_cells = length // _CELL_SIZE
    cell = 0
    while cell < map_cells:
        if cell + cellsize >= map_cells:
            c.fail(
                dti, node,
                f"property size ({length}) too small, "
                f"expected > {(cell + cellsize) * _CELL_SIZE}",
                map_prop,
            )
            break
        cell += cellsize
        phandle = map_prop.cell_n(cell)
        if not phandle_is_valid(phandle):
            if not dti.plugin:
                c.fail(
                    dti, node,
                    f"Cell {cell} is not a phandle({phandle})", map_prop,
                )
            break
        provider_node = dti.dt.get_node_by_phandle(phandle)
        if provider_node is None:
            c.fail(
                dti, node,
                f"Could not get phandle({phandle}) node for (cell {cell})", map_prop,
            )
            break
        cellprop = provider_node.get_property("#interrupt-cells")
        if cellprop is None:
            c.fail(
                dti, node,
                f"Missing property '#interrupt-cells' in node "
                f"{provider_node.fullpath} or bad phandle "
                f"(referred from interrupt-map[{cell}])",
            )
            break
        parent_cellsize = _cell_or_zero(cellprop)
        addr_prop = provider_node.get_property("#address-cells")
        if addr_prop is not None:
            parent_cellsize += _cell_or_zero(addr_prop)
        cell += 1 + parent_cellsize


def _interrupts_property(c: Check, dti: DtInfo, node: Node) -> None:
    irq_prop = node.get_property("interrupts")
    if irq_prop is None:
        return
    length = len(irq_prop.val)
    if length % _CELL_SIZE:
        c.fail(
            dti, node,
            f"size ({length}) is invalid, expected multiple of {_CELL_SIZE}", irq_prop,
        )

    irq_node = None
    parent = node
    prop = None
    while parent is not None and prop is None:
        if parent is not node and _is_interrupt_provider(parent):
            irq_node = parent
            break
        prop = parent.get_property("interrupt-parent")
        if prop is not None:
            phandle = _cell_or_zero(prop)
            if not phandle_is_valid(phandle):
                if dti.plugin:
                    return
                c.fail(dti, parent, "Invalid phandle", prop)
                continue
            irq_node = dti.dt.get_node_by_phandle(phandle)
            if irq_node is None:
                c.fail(dti, parent, "Bad phandle", prop)
                return
            if not _is_interrupt_provider(irq_node):
                c.fail(dti, irq_node,
                       "Missing interrupt-controller or interrupt-map property")
            break
        parent = parent.parent

    if irq_node is None:
        c.fail(dti, node, "Missing interrupt-parent")
        return
    cells_prop = irq_node.get_property("#interrupt-cells")
    if cells_prop is None:
        return
    irq_cells = _cell_or_zero(cells_prop)
    entry = irq_cells * _CELL_SIZE
    ok = length == 0 if entry == 0 else length % entry == 0
    if not ok:
        c.fail(
            dti, node, f"size is ({length}), expected multiple of {entry}", cells_prop,
        )


def _add(checks, name, fn, *prereqs, data=None, warn=False, error=False) -> None:
    checks[name] = Check(
        name, fn, data, warn=warn, error=error,
        prereqs=[checks[p] for p in prereqs],
    )


def add_provider_checks(checks: dict[str, Check]) -> dict[str, Check]:
    """Add provider, GPIO and interrupt checks, adding their dependencies if missing."""
    if "addr_size_cells" not in checks:
        add_semantic_checks(checks)
    for name, provider in _PROVIDERS:
        _add(checks, f"{name}_is_cell", check_is_cell,
             data=provider.cell_name, warn=True)
        _add(checks, f"{name}_property", _provider_cells_property,
             f"{name}_is_cell", "phandle_references", data=provider, warn=True)
    _add(checks, "gpios_property", _gpios_property, "phandle_references", warn=True)
    _add(checks, "deprecated_gpio_property", _deprecated_gpio_property)
    _add(checks, "interrupt_provider", _interrupt_provider,
         "interrupts_extended_is_cell", warn=True)
    _add(checks, "interrupt_map", _interrupt_map,
         "phandle_references", "addr_size_cells", "interrupt_provider", warn=True)
    _add(checks, "interrupts_property", _interrupts_property, warn=True)
    return checks