"""Binary dump format (GDBM "flat file").

The dump starts with four text lines, each beginning with "!" and ending
in CRLF:

    !
    ! GDBM FLAT FILE DUMP -- THIS IS NOT A TEXT FILE
    ! gdbmtool 0.1.0
    !

followed by one record per pair: a 4-byte big-endian key length, the key,
a 4-byte big-endian value length, the value. There is no trailer; the dump
ends at end of file.
"""

import struct
from typing import BinaryIO, Iterable

from .errors import FlatDumpError

SIGNATURE = b"!\r\n! GDBM FLAT FILE DUMP -- THIS IS NOT A TEXT FILE\r\n"
HEADER_LINES = 4
LENGTH = struct.Struct(">I")


def is_flat_dump(head: bytes) -> bool:
    """True if head (the first bytes of a file) starts a binary dump."""
    return head.startswith(SIGNATURE)


def write_flat(out: BinaryIO, items: Iterable[tuple[bytes, bytes]], producer: str) -> int:
    """Write all items as a binary dump; returns the number of pairs."""
    out.write(SIGNATURE)
    out.write(f"! {producer}\r\n!\r\n".encode("ascii"))

    count = 0
    for key, value in items:
        out.write(LENGTH.pack(len(key)))
        out.write(key)
        out.write(LENGTH.pack(len(value)))
        out.write(value)
        count += 1
    return count


def _read_datum(data: bytes, pos: int) -> tuple[bytes, int]:
    if pos + LENGTH.size > len(data):
        raise FlatDumpError(pos, "truncated length")
    (size,) = LENGTH.unpack_from(data, pos)
    pos += LENGTH.size
    if pos + size > len(data):
        raise FlatDumpError(pos, f"truncated datum: expected {size} bytes")
    return data[pos:pos + size], pos + size


def read_flat(stream: BinaryIO) -> list[tuple[bytes, bytes]]:
    """Decode a binary dump, validating all of it before returning.

    Raises:
        FlatDumpError: On a bad header, a truncated record or a key
            without a value.
    """
    data = stream.read()
    if not is_flat_dump(data):
        raise FlatDumpError(0, "missing GDBM flat file header")

    pos = 0
    for _ in range(HEADER_LINES):
        end = data.find(b"\r\n", pos)
        if end < 0 or data[pos:pos + 1] != b"!":
            raise FlatDumpError(pos, "malformed header line")
        pos = end + 2

    pairs = []
    while pos < len(data):
        key, pos = _read_datum(data, pos)
        if pos >= len(data):
            raise FlatDumpError(pos, "key without value")
        value, pos = _read_datum(data, pos)
        pairs.append((key, value))
    return pairs
