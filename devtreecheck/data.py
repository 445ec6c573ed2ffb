"""Byte buffers with typed markers, used for property values."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, Optional

_CHUNK_SIZE = 4096


class DataError(Exception):
    """Raised when a data buffer cannot be built as requested."""


class MarkerType(enum.Enum):
    """Kinds of annotation that can be attached to a position in a buffer."""

    TYPE_NONE = enum.auto()
    REF_PHANDLE = enum.auto()
    REF_PATH = enum.auto()
    LABEL = enum.auto()
    TYPE_UINT8 = enum.auto()
    TYPE_UINT16 = enum.auto()
    TYPE_UINT32 = enum.auto()
    TYPE_UINT64 = enum.auto()
    TYPE_STRING = enum.auto()


@dataclass(eq=False)
class Marker:
    """An annotation at a byte offset of a buffer."""

    offset: int
    type: MarkerType
    ref: Optional[str] = None


@dataclass
class Data:
    """A growable byte buffer together with its list of markers.

    Mutating methods change the buffer in place and return it, so calls
    can be chained.
    """

    val: bytearray = field(default_factory=bytearray)
    markers: list[Marker] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.val = bytearray(self.val)

    def __len__(self) -> int:
        return len(self.val)

    def __bytes__(self) -> bytes:
        return bytes(self.val)

    @classmethod
    def from_bytes(cls, mem: bytes) -> "Data":
        """Build a buffer holding a copy of ``mem``."""
        return cls(bytearray(mem))

    @classmethod
    def from_file(cls, stream: BinaryIO, maxlen: Optional[int] = None) -> "Data":
        """Read up to ``maxlen`` bytes (or everything, if None) from a binary stream."""
        data = cls()
        data.add_marker(MarkerType.TYPE_NONE)
        while maxlen is None or len(data.val) < maxlen:
            chunk_size = _CHUNK_SIZE if maxlen is None else maxlen - len(data.val)
            try:
                chunk = stream.read(chunk_size)
            except OSError as exc:
                raise DataError(f"Error reading file into data: {exc}") from exc
            if not chunk:
                break
            data.val += chunk
        return data

    def append(self, mem: bytes) -> "Data":
        """Append raw bytes."""
        self.val += mem
        return self

    def insert_at_marker(self, marker: Marker, mem: bytes) -> "Data":
        """Insert bytes at a marker's offset, shifting the markers after it."""
        index = next(
            (i for i, m in enumerate(self.markers) if m is marker), None
        )
        if index is None:
            raise DataError("marker does not belong to this data")
        if marker.offset > len(self.val):
            raise DataError("marker offset lies beyond the end of the data")
        self.val[marker.offset:marker.offset] = mem
        for later in self.markers[index + 1:]:
            later.offset += len(mem)
        return self

    def merge(self, other: "Data") -> "Data":
        """Append another buffer, carrying its markers over at shifted offsets."""
        base = len(self.val)
        self.val += other.val
        self.markers.extend(
            Marker(m.offset + base, m.type, m.ref) for m in other.markers
        )
        return self

    def append_integer(self, value: int, bits: int) -> "Data":
        """Append a big-endian integer of 8, 16, 32 or 64 bits (truncated to fit)."""
        if bits not in (8, 16, 32, 64):
            raise DataError(f"Invalid literal size ({bits})")
        width = bits // 8
        masked = value & ((1 << bits) - 1)
        self.val += masked.to_bytes(width, "big")
        return self

    def append_reserve_entry(self, address: int, size: int) -> "Data":
        """Append a memory reservation entry: 64-bit address then 64-bit size."""
        return self.append_integer(address, 64).append_integer(size, 64)

    def append_cell(self, value: int) -> "Data":
        """Append a 32-bit cell."""
        return self.append_integer(value, 32)

    def append_addr(self, addr: int) -> "Data":
        """Append a 64-bit address."""
        return self.append_integer(addr, 64)

    def append_byte(self, byte: int) -> "Data":
        """Append a single byte."""
        return self.append_integer(byte, 8)

    def append_zeroes(self, count: int) -> "Data":
        """Append ``count`` zero bytes."""
        if count < 0:
            raise DataError("cannot append a negative number of bytes")
        self.val += bytes(count)
        return self

    def append_align(self, align: int) -> "Data":
        """Pad with zeroes up to the next multiple of ``align`` (a power of two)."""
        if align <= 0 or align & (align - 1):
            raise DataError(f"alignment must be a power of two, not {align}")
        length = len(self.val)
        newlen = (length + align - 1) & ~(align - 1)
        return self.append_zeroes(newlen - length)

    def add_marker(self, type: MarkerType, ref: Optional[str] = None) -> Marker:
        """Add a marker at the current end of the buffer and return it."""
        marker = Marker(len(self.val), type, ref)
        self.markers.append(marker)
        return marker

    def markers_of_type(self, type: MarkerType) -> Iterator[Marker]:
        """Yield the markers of the given type, in order."""
        return (m for m in self.markers if m.type is type)

    def is_one_string(self) -> bool:
        """True if the buffer is exactly one NUL-terminated string."""
        if not self.val:
            return False
        return self.val[-1] == 0 and 0 not in self.val[:-1]