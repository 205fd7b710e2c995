"""Storage engine for gdbmtool.

A single-file extendible hashing database with header and directory
introspection and ASCII or binary dump import/export.

Usage:
    from gdbmtool.storage import HashFile

    with HashFile.open("test.db", write=True, create=True) as db:
        db.insert(b"key", b"value")
"""

from .errors import (
    BadMagic,
    BlockSizeMismatch,
    BucketOverflow,
    CorruptFile,
    DumpFormatError,
    EngineError,
    FlatDumpError,
    ReadOnlyEngine,
)
from .hashfile import DEFAULT_BLOCK_SIZE, DEFAULT_CACHE_SIZE, MIN_BLOCK_SIZE, HashFile

__all__ = [
    "HashFile",
    "DEFAULT_BLOCK_SIZE",
    "DEFAULT_CACHE_SIZE",
    "MIN_BLOCK_SIZE",
    # Errors
    "EngineError",
    "BadMagic",
    "BlockSizeMismatch",
    "BucketOverflow",
    "CorruptFile",
    "DumpFormatError",
    "FlatDumpError",
    "ReadOnlyEngine",
]
