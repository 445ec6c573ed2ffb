import io

import pytest

from devtreecheck.data import Data, DataError, Marker, MarkerType


def test_append_cell_is_big_endian():
    data = Data().append_cell(0x12345678)
    assert bytes(data) == b"\x12\x34\x56\x78"


def test_append_integer_sixteen_bits():
    data = Data().append_integer(0xABCD, 16)
    assert bytes(data) == b"\xab\xcd"


def test_append_integer_truncates_to_width():
    data = Data().append_integer(0x1FF, 8)
    assert bytes(data) == b"\xff"


@pytest.mark.parametrize("bits", [0, 12, 24, 128])
def test_append_integer_rejects_bad_width(bits):
    with pytest.raises(DataError):
        Data().append_integer(1, bits)


def test_append_addr_round_trip():
    value = 0x0123456789ABCDEF
    data = Data().append_addr(value)
    assert len(data) == 8
    assert int.from_bytes(bytes(data), "big") == value


def test_append_reserve_entry_layout():
    data = Data().append_reserve_entry(0x1000, 0x2000)
    raw = bytes(data)
    assert len(raw) == 16
    assert int.from_bytes(raw[:8], "big") == 0x1000
    assert int.from_bytes(raw[8:], "big") == 0x2000


def test_append_byte_and_chaining():
    data = Data().append_byte(7).append_byte(9)
    assert bytes(data) == bytes([7, 9])


def test_append_align_pads_with_zeroes():
    data = Data.from_bytes(b"abcde").append_align(4)
    assert len(data) % 4 == 0
    assert bytes(data).startswith(b"abcde")
    assert set(bytes(data)[5:]) == {0}


def test_append_align_already_aligned():
    data = Data.from_bytes(b"abcd").append_align(4)
    assert bytes(data) == b"abcd"


def test_append_align_rejects_non_power_of_two():
    with pytest.raises(DataError):
        Data().append_align(3)


def test_append_zeroes():
    data = Data.from_bytes(b"x").append_zeroes(3)
    assert bytes(data) == b"x\x00\x00\x00"


def test_add_marker_records_current_offset():
    data = Data.from_bytes(b"abc")
    marker = data.add_marker(MarkerType.LABEL, "lbl")
    assert marker.offset == 3
    assert marker.ref == "lbl"
    assert data.markers == [marker]


def test_markers_of_type_filters_in_order():
    data = Data()
    first = data.add_marker(MarkerType.REF_PHANDLE, "a")
    data.append_cell(0)
    data.add_marker(MarkerType.LABEL, "b")
    second = data.add_marker(MarkerType.REF_PHANDLE, "c")
    assert list(data.markers_of_type(MarkerType.REF_PHANDLE)) == [first, second]


def test_insert_at_marker_shifts_later_markers():
    data = Data.from_bytes(b"ab")
    before = data.add_marker(MarkerType.LABEL, "x")
    data.append(b"cd")
    after = data.add_marker(MarkerType.LABEL, "y")
    data.insert_at_marker(before, b"/path\x00")
    assert bytes(data) == b"ab/path\x00cd"
    assert before.offset == 2
    assert after.offset == 4 + len(b"/path\x00")


def test_insert_at_foreign_marker_fails():
    data = Data.from_bytes(b"ab")
    with pytest.raises(DataError):
        data.insert_at_marker(Marker(0, MarkerType.LABEL), b"z")


def test_merge_offsets_markers():
    first = Data.from_bytes(b"abc")
    first.add_marker(MarkerType.LABEL, "start")
    second = Data.from_bytes(b"de")
    second.add_marker(MarkerType.LABEL, "end")
    merged = first.merge(second)
    assert bytes(merged) == b"abcde"
    assert [(m.offset, m.ref) for m in merged.markers] == [(3, "start"), (5, "end")]
    assert second.markers[0].offset == 2


@pytest.mark.parametrize(
    "raw, expected",
    [
        (b"", False),
        (b"hello\x00", True),
        (b"\x00", True),
        (b"hello", False),
        (b"a\x00b\x00", False),
    ],
)
def test_is_one_string(raw, expected):
    assert Data.from_bytes(raw).is_one_string() is expected


def test_from_file_reads_everything():
    payload = bytes(range(256)) * 40
    data = Data.from_file(io.BytesIO(payload))
    assert bytes(data) == payload
    assert [m.type for m in data.markers] == [MarkerType.TYPE_NONE]
    assert data.markers[0].offset == 0


def test_from_file_respects_maxlen():
    payload = b"0123456789"
    data = Data.from_file(io.BytesIO(payload), 4)
    assert bytes(data) == payload[:4]


def test_from_file_short_input_with_maxlen():
    data = Data.from_file(io.BytesIO(b"ab"), 100)
    assert bytes(data) == b"ab"


def test_from_file_wraps_read_errors():
    class Broken(io.RawIOBase):
        def read(self, size=-1):
            raise OSError("boom")

    with pytest.raises(DataError):
        Data.from_file(Broken())