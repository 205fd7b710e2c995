"""ASCII dump format.

The dump is line oriented text in the GDBM "standard" layout:

    # GDBM dump file created by gdbmtool 0.1.0 on Sat Oct 17 12:00:00 2026
    #:version=1.1
    #:file=test.db
    #:format=standard
    # End of header
    #:len=3
    Zm9v
    #:len=3
    YmFy
    # End of data
    #:count=1
    # End of file

Each datum is preceded by a `#:len=N` directive and encoded as base64 split
into lines of at most 76 characters. Data alternate key, value, key, value.
"""

import base64
import binascii
import time
from typing import Iterable, TextIO

from .errors import DumpFormatError

DUMP_VERSION = "1.1"
LINE_WIDTH = 76


def _encode(datum: bytes) -> list[str]:
    text = base64.b64encode(datum).decode("ascii")
    lines = [f"#:len={len(datum)}"]
    lines.extend(text[i:i + LINE_WIDTH] for i in range(0, len(text), LINE_WIDTH))
    return lines


def write_dump(
    out: TextIO,
    items: Iterable[tuple[bytes, bytes]],
    filename: str,
    producer: str,
) -> int:
    """Write all items as an ASCII dump.

    Args:
        out: Text stream to write to.
        items: (key, value) pairs.
        filename: Database name recorded in the header.
        producer: Program name and version recorded in the header.

    Returns:
        Number of pairs written.
    """
    out.write(f"# GDBM dump file created by {producer} on {time.ctime()}\n")
    out.write(f"#:version={DUMP_VERSION}\n")
    out.write(f"#:file={filename}\n")
    out.write("#:format=standard\n")
    out.write("# End of header\n")

    count = 0
    for key, value in items:
        for line in _encode(key) + _encode(value):
            out.write(line + "\n")
        count += 1

    out.write("# End of data\n")
    out.write(f"#:count={count}\n")
    out.write("# End of file\n")
    return count


def _directives(line: str) -> dict[str, str]:
    """Parse "#:a=1,b=2" into {"a": "1", "b": "2"}."""
    result = {}
    for part in line[2:].split(","):
        name, sep, value = part.partition("=")
        if sep:
            result[name.strip()] = value.strip()
    return result


def read_dump(stream: TextIO) -> list[tuple[bytes, bytes]]:
    """Decode an ASCII dump.

    The whole dump is validated before anything is returned, so a caller
    importing the result never applies a partially decoded file.

    Args:
        stream: Text stream positioned at the start of the dump.

    Returns:
        (key, value) pairs in dump order.

    Raises:
        DumpFormatError: On any structural, length, base64 or count error.
    """
    lines = [line.rstrip("\r\n") for line in stream]
    pos = 0
    header = {}

    # Header: comments and directives up to the first #:len
    while pos < len(lines) and not lines[pos].startswith("#:len="):
        line = lines[pos]
        if line.startswith("#:"):
            header.update(_directives(line))
        elif line and not line.startswith("#"):
            raise DumpFormatError(pos + 1, "unexpected data before #:len")
        elif line == "# End of data":
            break
        pos += 1

    version = header.get("version")
    if version != DUMP_VERSION:
        raise DumpFormatError(1, f"unsupported dump version: {version}")
    if header.get("format", "standard") != "standard":
        raise DumpFormatError(1, f"unsupported dump format: {header['format']}")

    data: list[bytes] = []
    count = None
    while pos < len(lines):
        line = lines[pos]
        pos += 1
        if line.startswith("#:len="):
            try:
                size = int(line[len("#:len="):])
            except ValueError:
                raise DumpFormatError(pos, f"bad length: {line}") from None
            encoded_len = 4 * ((size + 2) // 3)
            text = ""
            while len(text) < encoded_len:
                if pos >= len(lines) or lines[pos].startswith("#"):
                    raise DumpFormatError(pos, "truncated datum")
                text += lines[pos].strip()
                pos += 1
            try:
                datum = base64.b64decode(text, validate=True)
            except (binascii.Error, ValueError):
                raise DumpFormatError(pos, "invalid base64 data") from None
            if len(datum) != size:
                raise DumpFormatError(
                    pos, f"length mismatch: expected {size}, got {len(datum)}"
                )
            data.append(datum)
        elif line.startswith("#:"):
            directives = _directives(line)
            if "count" in directives:
                try:
                    count = int(directives["count"])
                except ValueError:
                    raise DumpFormatError(pos, f"bad count: {line}") from None
        elif line and not line.startswith("#"):
            raise DumpFormatError(pos, "unexpected data line")

    if len(data) % 2:
        raise DumpFormatError(len(lines), "key without value")
    pairs = list(zip(data[0::2], data[1::2]))
    if count is None:
        raise DumpFormatError(len(lines), "missing #:count trailer")
    if count != len(pairs):
        raise DumpFormatError(
            len(lines), f"count mismatch: trailer says {count}, found {len(pairs)}"
        )
    return pairs
