"""Mode-tagged database handle.

A Database wraps one open storage engine and is either READ_ONLY or
READ_WRITE. Both modes expose the full command set; the mutating commands
(insert, try-insert, remove, load) raise ReadOnlyViolation on a READ_ONLY
handle instead of being missing from its interface.

Every command returns its output as a list of lines in the order the engine
produced them.
"""

import io
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

from .common import decode_utf8, version_string
from .errors import IoError, InvalidArgument, ReadOnlyViolation, StorageEngineError
from .registry import COMMANDS
from .storage import EngineError, HashFile
from .storage.flatdump import SIGNATURE, is_flat_dump


class Mode(Enum):
    """Access mode of a database handle."""

    READ_ONLY = "read-only"
    READ_WRITE = "read-write"


# Command name -> Database method. Arguments are passed by lowercased
# placeholder name (KEY -> key, VALUE -> value, FILE -> file, FORMAT -> format).
HANDLERS = {
    "header": "header",
    "dir": "directory",
    "len": "len",
    "get": "get",
    "insert": "insert",
    "try-insert": "try_insert",
    "remove": "remove",
    "keys": "keys",
    "values": "values",
    "entries": "entries",
    "load": "load",
    "dump": "dump",
}

COMMANDS.check_handlers(HANDLERS)

DUMP_FORMATS = ["ascii", "binary"]


@contextmanager
def engine_errors(io_path: Optional[str] = None) -> Iterator[None]:
    """Re-raise engine failures as StorageEngineError with the same message.

    With io_path set, OSErrors are attributed to that file instead.
    """
    try:
        yield
    except EngineError as e:
        raise StorageEngineError(str(e)) from e
    except OSError as e:
        if io_path is not None:
            raise IoError(io_path, e.strerror or str(e)) from e
        raise StorageEngineError(f"I/O error: {e}") from e


def _lines(value: Optional[bytes]) -> list[str]:
    """Zero or one output line for an optional stored value."""
    if value is None:
        return []
    return [decode_utf8(value)]


class Database:
    """An open database in READ_ONLY or READ_WRITE mode."""

    def __init__(self, engine: HashFile, mode: Mode):
        self.engine = engine
        self.mode = mode

    @classmethod
    def open_ro(cls, filename: Path, cache_size: Optional[int] = None) -> "Database":
        """Open an existing database read-only.

        Raises:
            OSError, EngineError: From the storage engine.
        """
        return cls(HashFile.open(filename, cache_size=cache_size), Mode.READ_ONLY)

    @classmethod
    def open_rw(
        cls,
        filename: Path,
        cache_size: Optional[int] = None,
        create: bool = False,
        block_size: Optional[int] = None,
    ) -> "Database":
        """Open a database read-write, creating it when create is set.

        Raises:
            OSError, EngineError: From the storage engine.
        """
        engine = HashFile.open(
            filename,
            write=True,
            create=create,
            block_size=block_size,
            cache_size=cache_size,
        )
        return cls(engine, Mode.READ_WRITE)

    @property
    def writable(self) -> bool:
        return self.mode is Mode.READ_WRITE

    def close(self) -> None:
        self.engine.close()

    def dispatch(self, name: str, args: Optional[dict[str, str]] = None) -> list[str]:
        """Run a registered command.

        Args:
            name: Command name from the registry.
            args: Arguments keyed by placeholder name.

        Returns:
            Output lines.

        Raises:
            UsageError: If name or args do not match the registry.
        """
        parsed = COMMANDS.validate(name, args)
        method = getattr(self, HANDLERS[parsed.name])
        kwargs = {k.lower(): v for k, v in parsed.args.items()}
        return method(**kwargs)

    def _require_write(self, command: str) -> HashFile:
        if self.mode is Mode.READ_ONLY:
            raise ReadOnlyViolation(command)
        return self.engine

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def header(self) -> list[str]:
        with engine_errors():
            return self.engine.header_lines()

    def directory(self) -> list[str]:
        with engine_errors():
            return self.engine.directory_lines()

    def len(self) -> list[str]:
        with engine_errors():
            return [str(len(self.engine))]

    # ------------------------------------------------------------------
    # Single key operations
    # ------------------------------------------------------------------

    def get(self, key: str) -> list[str]:
        with engine_errors():
            value = self.engine.get(key.encode("utf-8"))
        return _lines(value)

    def insert(self, key: str, value: str) -> list[str]:
        engine = self._require_write("insert")
        with engine_errors():
            old = engine.insert(key.encode("utf-8"), value.encode("utf-8"))
        return _lines(old)

    def try_insert(self, key: str, value: str) -> list[str]:
        engine = self._require_write("try-insert")
        with engine_errors():
            _, old = engine.try_insert(key.encode("utf-8"), value.encode("utf-8"))
        return _lines(old)

    def remove(self, key: str) -> list[str]:
        engine = self._require_write("remove")
        with engine_errors():
            old = engine.remove(key.encode("utf-8"))
        return _lines(old)

    # ------------------------------------------------------------------
    # Full listings (collected completely before returning)
    # ------------------------------------------------------------------

    def keys(self) -> list[str]:
        with engine_errors():
            return [decode_utf8(k, "key") for k in self.engine.keys()]

    def values(self) -> list[str]:
        with engine_errors():
            return [decode_utf8(v) for v in self.engine.values()]

    def entries(self) -> list[str]:
        with engine_errors():
            return [
                f"{decode_utf8(k, 'key')} => {decode_utf8(v)}"
                for k, v in self.engine.items()
            ]

    # ------------------------------------------------------------------
    # Dumps
    # ------------------------------------------------------------------

    def load(self, file: str) -> list[str]:
        """Import a dump, detecting binary or ASCII format from its header."""
        engine = self._require_write("load")
        try:
            stream = open(file, "rb")
        except OSError as e:
            raise IoError(file, e.strerror or str(e)) from e
        with stream, engine_errors(io_path=file):
            head = stream.read(len(SIGNATURE))
            stream.seek(0)
            if is_flat_dump(head):
                engine.import_binary(stream)
                return []
            text = io.TextIOWrapper(stream, encoding="ascii", newline="")
            try:
                engine.import_ascii(text)
            except UnicodeDecodeError as e:
                raise IoError(file, f"not an ASCII dump: {e.reason}") from e
            finally:
                text.detach()
        return []

    def dump(self, file: str, format: str = "ascii") -> list[str]:
        if format not in DUMP_FORMATS:
            raise InvalidArgument("FORMAT", format, DUMP_FORMATS)
        try:
            if format == "binary":
                stream = open(file, "wb")
            else:
                stream = open(file, "w", encoding="ascii", newline="\n")
        except OSError as e:
            raise IoError(file, e.strerror or str(e)) from e
        with stream, engine_errors(io_path=file):
            if format == "binary":
                self.engine.export_binary(stream, version_string())
            else:
                self.engine.export_ascii(stream, version_string())
        return []
