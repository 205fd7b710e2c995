"""Common utilities and constants for gdbmtool.

This module defines constants and helpers used across all components.
"""

from .errors import NonUtf8Value

# Producer info - identifies this implementation in dumps and --version
PRODUCER = {
    "name": "gdbmtool",
    "version": "0.1.0",
}

DEFAULT_PROMPT = "gdbm> "


def decode_utf8(data: bytes, what: str = "value") -> str:
    """Decode stored bytes as UTF-8, failing instead of substituting.

    Args:
        data: Raw bytes as stored by the engine.
        what: What the bytes are ("key" or "value"), for the error message.

    Returns:
        The decoded string.

    Raises:
        NonUtf8Value: If data is not valid UTF-8.
    """
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        raise NonUtf8Value(what, data) from None


def version_string() -> str:
    """Return "name version" for --version and the interactive version command."""
    return f"{PRODUCER['name']} {PRODUCER['version']}"
