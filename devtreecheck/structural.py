"""Structural checks and reference fixups: names, labels, phandles, paths."""

from __future__ import annotations

import string
from typing import Optional

from devtreecheck.checker import Check, check_is_string
from devtreecheck.data import Marker, MarkerType
from devtreecheck.tree import DtInfo, Node, Property, phandle_is_valid

_CELL_SIZE = 4

_LOWERCASE = string.ascii_lowercase
_UPPERCASE = string.ascii_uppercase
_DIGITS = string.digits
NODECHARS = _LOWERCASE + _UPPERCASE + _DIGITS + ",._+-@"
PROPCHARS = _LOWERCASE + _UPPERCASE + _DIGITS + ",._+*#?-"
PROPNODECHARSSTRICT = _LOWERCASE + _UPPERCASE + _DIGITS + ",-"


def _span(text: str, allowed: str) -> int:
    """Length of the leading run of ``text`` made only of ``allowed`` characters."""
    return next((i for i, ch in enumerate(text) if ch not in allowed), len(text))


def _always_fail(c: Check, dti: DtInfo, node: Node) -> None:
    c.fail(dti, node, "always_fail check")


def _duplicate_node_names(c: Check, dti: DtInfo, node: Node) -> None:
    children = node.children
    for i, child in enumerate(children):
        for other in children[i + 1:]:
            if child.name == other.name:
                c.fail(dti, other, "Duplicate node name")


def _duplicate_property_names(c: Check, dti: DtInfo, node: Node) -> None:
    props = node.properties
    for i, prop in enumerate(props):
        for other in props[i + 1:]:
            if prop.name == other.name:
                c.fail(dti, node, "Duplicate property name", prop)


def _node_name_chars(c: Check, dti: DtInfo, node: Node) -> None:
    n = _span(node.name, c.data)
    if n < len(node.name):
        c.fail(dti, node, f"Bad character '{node.name[n]}' in node name")


def _node_name_chars_strict(c: Check, dti: DtInfo, node: Node) -> None:
    n = _span(node.name, c.data)
    if n < len(node.basename):
        c.fail(dti, node, f"Character '{node.name[n]}' not recommended in node name")


def _node_name_format(c: Check, dti: DtInfo, node: Node) -> None:
    if "@" in node.unitname:
        c.fail(dti, node, "multiple '@' characters in node name")


def _node_name_vs_property_name(c: Check, dti: DtInfo, node: Node) -> None:
    if node.parent is None:
        return
    if node.parent.get_property(node.name) is not None:
        c.fail(dti, node, "node name and property name conflict")


def _unit_address_vs_reg(c: Check, dti: DtInfo, node: Node) -> None:
    if node.get_subnode("__overlay__") is not None:
        return
    prop = node.get_property("reg")
    if prop is None:
        prop = node.get_property("ranges")
        if prop is not None and not len(prop.val):
            prop = None
    if prop is not None:
        if not node.unitname:
            c.fail(dti, node, "node has a reg or ranges property, but no unit name")
    elif node.unitname:
        c.fail(dti, node, "node has a unit name, but no reg or ranges property")


def _property_name_chars(c: Check, dti: DtInfo, node: Node) -> None:
    for prop in node.properties:
        n = _span(prop.name, c.data)
        if n < len(prop.name):
            c.fail(dti, node, f"Bad character '{prop.name[n]}' in property name", prop)


def _property_name_chars_strict(c: Check, dti: DtInfo, node: Node) -> None:
    for prop in node.properties:
        name = prop.name
        n = _span(name, c.data)
        if n == len(name) or name == "device_type":
            continue
        # '#' is allowed only at the start of a name, after any vendor prefix.
        if name[n] == "#" and (n == 0 or name[n - 1] == ","):
            name = name[n + 1:]
            n = _span(name, c.data)
        if n < len(name):
            c.fail(
                dti, node,
                f"Character '{name[n]}' not recommended in property name", prop,
            )


def _describe_label(node: Node, prop: Optional[Property], mark: Optional[Marker]) -> str:
    text = "value of " if mark is not None else ""
    if prop is not None:
        text += f"'{prop.name}' in "
    return text + node.fullpath


def _duplicate_label(
    c: Check,
    dti: DtInfo,
    label: str,
    node: Node,
    prop: Optional[Property],
    mark: Optional[Marker],
) -> None:
    dt = dti.dt
    other_prop: Optional[Property] = None
    other_mark: Optional[Marker] = None
    other_node = dt.get_node_by_label(label)
    if other_node is None:
        found = dt.get_property_by_label(label)
        if found is not None:
            other_node, other_prop = found
    if other_node is None:
        found_mark = dt.get_marker_label(label)
        if found_mark is not None:
            other_node, other_prop, other_mark = found_mark
    if other_node is None:
        return
    if other_node is not node or other_prop is not prop or other_mark is not mark:
        c.fail(
            dti, node,
            f"Duplicate label '{label}' on {_describe_label(node, prop, mark)}"
            f" and {_describe_label(other_node, other_prop, other_mark)}",
        )


def _duplicate_label_node(c: Check, dti: DtInfo, node: Node) -> None:
    for label in list(node.labels):
        _duplicate_label(c, dti, label, node, None, None)
    for prop in node.properties:
        for label in list(prop.labels):
            _duplicate_label(c, dti, label, node, prop, None)
        for mark in list(prop.val.markers_of_type(MarkerType.LABEL)):
            _duplicate_label(c, dti, mark.ref, node, prop, mark)


def _phandle_prop(c: Check, dti: DtInfo, node: Node, propname: str) -> int:
    prop = node.get_property(propname)
    if prop is None:
        return 0
    if len(prop.val) != _CELL_SIZE:
        c.fail(dti, node, f"bad length ({len(prop.val)}) {prop.name} property", prop)
        return 0
    for mark in prop.val.markers_of_type(MarkerType.REF_PHANDLE):
        assert mark.offset == 0
        if node is not dti.dt.get_node_by_ref(mark.ref):
            c.fail(dti, node, f"{prop.name} is a reference to another node")
        # A reference to the node itself asks for a phandle to be allocated later.
        return 0
    phandle = prop.cell()
    if not phandle_is_valid(phandle):
        c.fail(dti, node, f"bad value (0x{phandle:x}) in {prop.name} property", prop)
        return 0
    return phandle


def _explicit_phandles(c: Check, dti: DtInfo, node: Node) -> None:
    assert not node.phandle, "phandles must not be assigned before this check"
    phandle = _phandle_prop(c, dti, node, "phandle")
    linux_phandle = _phandle_prop(c, dti, node, "linux,phandle")
    if not phandle and not linux_phandle:
        return
    if linux_phandle and phandle and phandle != linux_phandle:
        c.fail(dti, node, "mismatching 'phandle' and 'linux,phandle' properties")
    if linux_phandle and not phandle:
        phandle = linux_phandle
    other = dti.dt.get_node_by_phandle(phandle)
    if other is not None and other is not node:
        c.fail(
            dti, node,
            f"duplicated phandle 0x{phandle:x} (seen before at {other.fullpath})",
        )
        return
    node.phandle = phandle


def _name_properties(c: Check, dti: DtInfo, node: Node) -> None:
    prop = next((p for p in node.proplist if p.name == "name"), None)
    if prop is None:
        return
    base = node.basename.encode("utf-8", errors="surrogateescape")
    raw = bytes(prop.val.val)
    if len(raw) != len(base) + 1 or raw[:len(base)] != base:
        shown = raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")
        c.fail(
            dti, node,
            f"\"name\" property is incorrect (\"{shown}\" instead of base node name)",
        )
    else:
        # The property is correct and therefore redundant.
        node.proplist.remove(prop)


def _phandle_references(c: Check, dti: DtInfo, node: Node) -> None:
    dt = dti.dt
    for prop in node.properties:
        for mark in list(prop.val.markers_of_type(MarkerType.REF_PHANDLE)):
            assert mark.offset + _CELL_SIZE <= len(prop.val)
            where = slice(mark.offset, mark.offset + _CELL_SIZE)
            refnode = dt.get_node_by_ref(mark.ref)
            if refnode is None:
                if not dti.plugin:
                    c.fail(
                        dti, node,
                        f"Reference to non-existent node or label \"{mark.ref}\"",
                    )
                else:
                    prop.val.val[where] = b"\xff\xff\xff\xff"
                continue
            phandle = dt.get_node_phandle(refnode)
            prop.val.val[where] = phandle.to_bytes(_CELL_SIZE, "big")
            refnode.is_referenced = True


def _path_references(c: Check, dti: DtInfo, node: Node) -> None:
    dt = dti.dt
    for prop in node.properties:
        for mark in list(prop.val.markers_of_type(MarkerType.REF_PATH)):
            assert mark.offset <= len(prop.val)
            refnode = dt.get_node_by_ref(mark.ref)
            if refnode is None:
                c.fail(
                    dti, node,
                    f"Reference to non-existent node or label \"{mark.ref}\"",
                )
                continue
            path = refnode.fullpath.encode("utf-8", errors="surrogateescape")
            prop.val.insert_at_marker(mark, path + b"\x00")
            refnode.is_referenced = True


def _omit_unused_nodes(c: Check, dti: DtInfo, node: Node) -> None:
    if dti.generate_symbols and node.labels:
        return
    if node.omit_if_unused and not node.is_referenced:
        node.delete()


def _add(
    checks: dict[str, Check],
    name: str,
    fn,
    *prereqs: str,
    data=None,
    warn: bool = False,
    error: bool = False,
) -> None:
    checks[name] = Check(
        name, fn, data, warn=warn, error=error,
        prereqs=[checks[p] for p in prereqs],
    )


def add_structural_checks(checks: dict[str, Check]) -> dict[str, Check]:
    """Add the structural checks and reference fixups to ``checks`` by name."""
    _add(checks, "always_fail", _always_fail)
    _add(checks, "duplicate_node_names", _duplicate_node_names, error=True)
    _add(checks, "duplicate_property_names", _duplicate_property_names, error=True)
    _add(checks, "node_name_chars", _node_name_chars, data=NODECHARS, error=True)
    _add(checks, "node_name_chars_strict", _node_name_chars_strict,
         data=PROPNODECHARSSTRICT)
    _add(checks, "node_name_format", _node_name_format, "node_name_chars", error=True)
    _add(checks, "node_name_vs_property_name", _node_name_vs_property_name,
         "node_name_chars", warn=True)
    _add(checks, "unit_address_vs_reg", _unit_address_vs_reg, warn=True)
    _add(checks, "property_name_chars", _property_name_chars,
         data=PROPCHARS, error=True)
    _add(checks, "property_name_chars_strict", _property_name_chars_strict,
         data=PROPNODECHARSSTRICT)
    _add(checks, "duplicate_label", _duplicate_label_node, error=True)
    _add(checks, "explicit_phandles", _explicit_phandles, error=True)
    _add(checks, "name_is_string", check_is_string, data="name", error=True)
    _add(checks, "name_properties", _name_properties, "name_is_string", error=True)
    _add(checks, "phandle_references", _phandle_references,
         "duplicate_node_names", "explicit_phandles", error=True)
    _add(checks, "path_references", _path_references,
         "duplicate_node_names", error=True)
    _add(checks, "omit_unused_nodes", _omit_unused_nodes,
         "phandle_references", "path_references", error=True)
    return checks