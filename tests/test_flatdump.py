"""Tests for the binary (flat file) dump format."""

import io

import pytest

from gdbmtool.storage import FlatDumpError
from gdbmtool.storage.flatdump import SIGNATURE, is_flat_dump, read_flat, write_flat


def dump_bytes(pairs) -> bytes:
    out = io.BytesIO()
    write_flat(out, pairs, "gdbmtool 0.1.0")
    return out.getvalue()


class TestWriteFlat:
    """Tests for write_flat."""

    def test_header(self):
        data = dump_bytes([])

        assert data == SIGNATURE + b"! gdbmtool 0.1.0\r\n!\r\n"

    def test_record_layout(self):
        data = dump_bytes([(b"foo", b"barbaz")])

        assert data.endswith(b"\x00\x00\x00\x03foo\x00\x00\x00\x06barbaz")

    def test_returns_count(self):
        count = write_flat(io.BytesIO(), [(b"a", b"1"), (b"b", b"2")], "p")

        assert count == 2


class TestReadFlat:
    """Tests for read_flat."""

    def test_decodes_pairs(self):
        pairs = [(b"a", b"1"), (b"", b""), (b"\xff\x00", b"x" * 300)]

        assert read_flat(io.BytesIO(dump_bytes(pairs))) == pairs

    def test_empty_dump(self):
        assert read_flat(io.BytesIO(dump_bytes([]))) == []

    def test_missing_header(self):
        with pytest.raises(FlatDumpError, match="missing GDBM flat file header"):
            read_flat(io.BytesIO(b"\x00\x00\x00\x01a\x00\x00\x00\x01b"))

    def test_truncated_length(self):
        data = dump_bytes([(b"a", b"1")]) + b"\x00\x00"

        with pytest.raises(FlatDumpError, match="truncated length"):
            read_flat(io.BytesIO(data))

    def test_truncated_datum(self):
        data = dump_bytes([(b"key", b"value")])[:-2]

        with pytest.raises(FlatDumpError, match="truncated datum"):
            read_flat(io.BytesIO(data))

    def test_key_without_value(self):
        data = dump_bytes([]) + b"\x00\x00\x00\x01k"

        with pytest.raises(FlatDumpError, match="key without value"):
            read_flat(io.BytesIO(data))


def test_is_flat_dump():
    assert is_flat_dump(dump_bytes([(b"a", b"1")]))
    assert not is_flat_dump(b"# GDBM dump file created by gdbmtool")
