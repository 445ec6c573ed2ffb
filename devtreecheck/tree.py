"""In-memory device tree: nodes, properties and lookups."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional

from devtreecheck.data import Data, Marker, MarkerType

_CELL_SIZE = 4


def phandle_is_valid(phandle: int) -> bool:
    """A phandle is valid unless it is 0 or all ones (-1)."""
    value = phandle & 0xFFFFFFFF
    return value not in (0, 0xFFFFFFFF)


@dataclass(eq=False)
class Property:
    """A named property with a value buffer."""

    name: str
    val: Data = field(default_factory=Data)
    labels: list[str] = field(default_factory=list)
    deleted: bool = False
    srcpos: Optional[str] = None

    def cell(self) -> int:
        """The first 32-bit cell of the value."""
        return self.cell_n(0)

    def cell_n(self, index: int) -> int:
        """The 32-bit cell at the given index of the value."""
        start = index * _CELL_SIZE
        if index < 0 or start + _CELL_SIZE > len(self.val):
            raise IndexError(f"cell {index} is out of range for property {self.name}")
        return int.from_bytes(self.val.val[start:start + _CELL_SIZE], "big")

    def strings(self) -> list[str]:
        """Split the value into its NUL-separated strings."""
        raw = bytes(self.val.val)
        if not raw:
            return []
        if raw.endswith(b"\x00"):
            raw = raw[:-1]
        return [
            part.decode("utf-8", errors="surrogateescape")
            for part in raw.split(b"\x00")
        ]


@dataclass(eq=False)
class Node:
    """A tree node holding properties and child nodes."""

    name: str = ""
    proplist: list[Property] = field(default_factory=list)
    children: list["Node"] = field(default_factory=list)
    parent: Optional["Node"] = field(default=None, repr=False)
    labels: list[str] = field(default_factory=list)
    phandle: int = 0
    addr_cells: int = -1
    size_cells: int = -1
    bus: Optional[str] = None
    omit_if_unused: bool = False
    is_referenced: bool = False
    deleted: bool = False
    srcpos: list[str] = field(default_factory=list)

    @property
    def properties(self) -> list[Property]:
        """The properties that have not been deleted."""
        return [p for p in self.proplist if not p.deleted]

    @property
    def basename(self) -> str:
        """The node name without its unit address."""
        return self.name.split("@", 1)[0]

    @property
    def unitname(self) -> str:
        """The unit address following the first '@', or an empty string."""
        _, sep, unit = self.name.partition("@")
        return unit if sep else ""

    @property
    def fullpath(self) -> str:
        if self.parent is None:
            return "/"
        parent_path = self.parent.fullpath
        if parent_path == "/":
            return "/" + self.name
        return f"{parent_path}/{self.name}"

    def add_child(self, child: "Node") -> "Node":
        """Attach a child node and return it."""
        child.parent = self
        self.children.append(child)
        return child

    def add_property(self, prop: Property) -> Property:
        """Attach a property and return it."""
        self.proplist.append(prop)
        return prop

    def get_property(self, name: str) -> Optional[Property]:
        return next((p for p in self.properties if p.name == name), None)

    def get_subnode(self, name: str) -> Optional["Node"]:
        return next((c for c in self.children if c.name == name), None)

    def walk(self) -> Iterator["Node"]:
        """Yield this node and all its descendants, depth first."""
        yield self
        for child in list(self.children):
            yield from child.walk()

    def delete(self) -> None:
        """Remove this node and its subtree from the tree."""
        for node in list(self.walk()):
            node.deleted = True
            node.labels.clear()
            for prop in node.proplist:
                prop.deleted = True
                prop.labels.clear()
        if self.parent is not None and self in self.parent.children:
            self.parent.children.remove(self)

    def is_compatible(self, compat: str) -> bool:
        prop = self.get_property("compatible")
        return prop is not None and compat in prop.strings()

    def get_node_by_path(self, path: str) -> Optional["Node"]:
        """Find a descendant by a '/'-separated path relative to this node."""
        node: Optional[Node] = self
        for component in (c for c in path.split("/") if c):
            node = node.get_subnode(component)
            if node is None:
                return None
        return node

    def get_node_by_label(self, label: str) -> Optional["Node"]:
        return next((n for n in self.walk() if label in n.labels), None)

    def get_node_by_phandle(self, phandle: int) -> Optional["Node"]:
        if not phandle_is_valid(phandle):
            return None
        return next((n for n in self.walk() if n.phandle == phandle), None)

    def get_node_by_ref(self, ref: str) -> Optional["Node"]:
        """Resolve a reference: '/', an absolute path, a label, or 'label/path'."""
        if ref == "/":
            return self
        if ref.startswith("/"):
            return self.get_node_by_path(ref)
        label, sep, path = ref.partition("/")
        target = self.get_node_by_label(label)
        if target is None:
            return None
        return target.get_node_by_path(path) if sep else target

    def get_property_by_label(self, label: str) -> Optional[tuple["Node", Property]]:
        """Find the property carrying ``label``, with the node that holds it."""
        for node in self.walk():
            for prop in node.properties:
                if label in prop.labels:
                    return node, prop
        return None

    def get_marker_label(
        self, label: str
    ) -> Optional[tuple["Node", Property, Marker]]:
        """Find a label marker inside a property value, with its node and property."""
        for node in self.walk():
            for prop in node.properties:
                for marker in prop.val.markers_of_type(MarkerType.LABEL):
                    if marker.ref == label:
                        return node, prop, marker
        return None

    def get_node_phandle(self, node: "Node") -> int:
        """Return ``node``'s phandle, allocating an unused one if it has none."""
        if phandle_is_valid(node.phandle):
            return node.phandle
        used = {n.phandle for n in self.walk()}
        phandle = 1
        while phandle in used:
            phandle += 1
        node.phandle = phandle
        if node.get_property("phandle") is None:
            node.add_property(Property("phandle", Data().append_cell(phandle)))
        return phandle


@dataclass
class DtInfo:
    """A parsed tree together with the settings the checks depend on."""

    dt: Node
    outname: str = "-"
    plugin: bool = False
    generate_symbols: bool = False
    quiet: int = 0