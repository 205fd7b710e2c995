"""Exceptions raised by the storage engine."""


class EngineError(Exception):
    """Base class for storage engine failures."""


class BadMagic(EngineError):
    """Raised when a file does not start with the database magic number."""

    def __init__(self, magic: int):
        self.magic = magic
        super().__init__(f"bad magic number {magic:#x}: not a database file")


class BlockSizeMismatch(EngineError):
    """Raised when an existing database was built with another block size."""

    def __init__(self, requested: int, actual: int):
        self.requested = requested
        self.actual = actual
        super().__init__(
            f"block size mismatch: requested {requested}, file uses {actual}"
        )


class CorruptFile(EngineError):
    """Raised when on-disk structures are inconsistent."""


class ReadOnlyEngine(EngineError):
    """Raised on a mutation of a database opened read-only."""

    def __init__(self):
        super().__init__("database opened read-only")


class DumpFormatError(EngineError):
    """Raised when an ASCII dump cannot be decoded."""

    def __init__(self, line_no: int, reason: str):
        self.line_no = line_no
        self.reason = reason
        super().__init__(f"dump line {line_no}: {reason}")


class FlatDumpError(EngineError):
    """Raised when a binary (flat) dump cannot be decoded."""

    def __init__(self, offset: int, reason: str):
        self.offset = offset
        self.reason = reason
        super().__init__(f"binary dump offset {offset}: {reason}")


class BucketOverflow(EngineError):
    """Raised when a full bucket holds only keys sharing the new key's hash.

    Splitting cannot separate identical hashes, so the insert is refused.
    """

    def __init__(self, hash_value: int):
        self.hash_value = hash_value
        super().__init__("bucket overflow: too many keys with the same hash")
