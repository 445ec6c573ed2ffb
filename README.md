# devtreecheck

`devtreecheck` checks device trees for structural and semantic mistakes.
You build the tree in memory, and the library runs a set of named checks
over it. The checks cover:

- duplicate node names and duplicate property names
- bad characters in node and property names
- duplicate labels
- conflicting or repeated phandles
- unresolved phandle and path references
- the format of `reg`, `ranges` and `dma-ranges`
- unit addresses on PCI, simple-bus, I2C and SPI buses
- properties that hold a phandle followed by arguments, such as `clocks`,
  `dmas`, `*-gpios`, `interrupts-extended`, `interrupt-map` and `interrupts`
- the `/chosen` and `/aliases` nodes
- graph ports and endpoints

Some checks are fixups rather than pure checks. `phandle_references`
writes the resolved phandles into property values, and allocates a
phandle for a target node that has none. `path_references` inserts the
full paths of the target nodes into property values. `name_properties`
drops a `name` property when it only repeats the node's base name.
`omit_unused_nodes` deletes nodes that are marked `omit_if_unused` and
are never referenced.

## Installation

```
pip install devtreecheck
```

To run the test suite:

```
pip install devtreecheck[test]
pytest
```

## Property data (`devtreecheck.data`)

A property value is a `Data` object. It holds a `bytearray` (`val`) and a
list of `Marker` objects. Each marker records a byte offset, a
`MarkerType` and an optional reference string. Labels, phandle
references and path references are all stored as markers.

The `append_*` methods change the buffer in place and return it, so
calls can be chained. Integers are stored big-endian.
`add_marker` returns the new `Marker`.

```python
from devtreecheck.data import Data, MarkerType

reg = Data().append_cell(0x1000).append_cell(0x100)
assert bytes(reg) == b"\x00\x00\x10\x00\x00\x00\x01\x00"

name = Data.from_bytes(b"uart\0")
assert name.is_one_string()

ref = Data()
ref.add_marker(MarkerType.REF_PHANDLE, "uart0")
ref.append_cell(0)
assert [m.ref for m in ref.markers_of_type(MarkerType.REF_PHANDLE)] == ["uart0"]
```

Other operations on `Data`:

- **Appending.** `append`, `append_integer(value, bits)` for 8, 16, 32 or
  64 bits, `append_byte`, `append_addr`, `append_reserve_entry`,
  `append_zeroes` and `append_align`.
- **Combining.** `merge` appends another buffer together with its markers.
  `insert_at_marker` inserts bytes at a marker and moves the markers
  after it.
- **Reading.** `Data.from_file(stream, maxlen)` reads from a binary stream.

Invalid requests raise `DataError`. Examples are an integer size other
than 8, 16, 32 or 64 bits, an alignment that is not a power of two, and a
marker that belongs to a different buffer.

## Trees (`devtreecheck.tree`)

```python
from devtreecheck.data import Data
from devtreecheck.tree import DtInfo, Node, Property

root = Node("")
soc = root.add_child(Node("soc"))
soc.add_property(Property("#address-cells", Data().append_cell(1)))
soc.add_property(Property("#size-cells", Data().append_cell(1)))
uart = soc.add_child(Node("serial@1000", labels=["uart0"]))
uart.add_property(Property("reg", Data().append_cell(0x1000).append_cell(0x100)))

assert uart.fullpath == "/soc/serial@1000"
assert uart.basename == "serial" and uart.unitname == "1000"

dti = DtInfo(root)
```

### Looking up nodes and properties

| Method | Returns |
| --- | --- |
| `get_node_by_path` | the node at a `/`-separated path |
| `get_node_by_label` | the node with the given label |
| `get_node_by_phandle` | the node with the given phandle |
| `get_node_by_ref` | the node for `/`, an absolute path, a label, or `label/sub/path` |
| `get_property_by_label` | `(node, property)` for a labelled property |
| `get_marker_label` | `(node, property, marker)` for a label inside a value |

### Other node methods

- `walk()` yields the node and all of its descendants.
- `delete()` removes the node's subtree.
- `is_compatible` tests the node's `compatible` list.
- `get_node_phandle` returns a node's phandle, allocating an unused one
  if the node has none.

### Properties and `DtInfo`

A `Property` offers `cell()`, `cell_n(i)` and `strings()` for reading its
value.

`DtInfo` holds the root node together with the settings the checks read:

- `outname`: used in messages when a node has no source position
- `plugin`: set for overlays with external references
- `generate_symbols`
- `quiet`

## Running the checks (`devtreecheck.registry`)

```python
from devtreecheck.registry import CheckRegistry, ChecksFailed

checks = CheckRegistry()
checks.parse_option(True, False, "no-unit_address_vs_reg")  # turn a warning off
checks.parse_option(False, True, "reg_format")              # make it an error

try:
    had_errors = checks.process(False, dti)
except ChecksFailed as exc:
    print(exc)
```

### Enabling and disabling checks

`CheckRegistry.names()` lists every check in the order the checks run.
`get(name)` returns one `Check`. Iterating over the registry yields all
of the checks.

`parse_option(warn, error, arg)` turns a check on, or turns it off when
`arg` starts with `no-` or `no_`:

- Turning a check on also turns on its prerequisites.
- Turning a check off also turns off every check that depends on it.
- An unknown name raises `ValueError`.

Some checks are off by default and must be turned on by name:

- `node_name_chars_strict`
- `property_name_chars_strict`
- `deprecated_gpio_property`
- `unique_unit_address_if_enabled`
- `always_fail`

### What `process` does

`process(force, dti)` runs each enabled check once, running its
prerequisites first. Each failure is written to standard error in this
form:

```
<source position or output name>: Warning (check_name): /path: message
```

The messages of each check are also kept in `Check.messages`.

`DtInfo.quiet` controls which messages are shown:

- 1 hides warnings.
- 2 also hides errors.
- 3 also hides the "output forced" notice.

If an error-level check fails, what happens depends on `force`:

- With `force` false, `process` raises `ChecksFailed`.
- With `force` true, it reports that output was forced and returns `True`.

In every other case `process` returns `False`.

A check records its result and does not run again. To run the same
registry over another tree, either create a new `CheckRegistry` or call
`reset()` on each check.

### Writing your own check

You can build your own check from the `Check` class in
`devtreecheck.checker`. A check function receives `(check, dti, node)`
and calls `check.fail(dti, node, message, prop)` to report a problem.

## What this package does not do

- It does not read or write device tree source or flattened blobs. Trees
  are built in memory through the `Node`, `Property` and `Data` classes.
- It has no command-line program. It is used as a library.