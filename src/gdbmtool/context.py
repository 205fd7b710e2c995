"""Session context: configuration plus the one open database.

The context is built once from the parsed command line, opens its database
at most once, and routes every dispatched command to that handle for the rest
of the process.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .common import DEFAULT_PROMPT
from .database import Database
from .errors import (
    DatabaseAlreadyOpen,
    ModeSwitchUnsupported,
    NoDatabaseOpen,
    NoFilenameConfigured,
    StorageOpenFailed,
)
from .registry import COMMANDS
from .storage import EngineError

logger = logging.getLogger(__name__)

# Reserved for switching between read-only and read-write; not supported.
MODE_SWITCH_COMMAND = "set"


@dataclass
class Context:
    """Session configuration and its open database handle."""

    write: bool = True
    create: bool = False
    cache_size: Optional[int] = None
    block_size: Optional[int] = None
    filename: Optional[Path] = None
    prompt_text: Optional[str] = None
    database: Optional[Database] = None

    @classmethod
    def configure(
        cls,
        write: bool = True,
        create: bool = False,
        cache_size: Optional[int] = None,
        block_size: Optional[int] = None,
        filename: Optional[Path] = None,
        prompt: Optional[str] = None,
    ) -> "Context":
        """Build a context from resolved configuration. Performs no I/O."""
        return cls(
            write=write,
            create=create,
            cache_size=cache_size,
            block_size=block_size,
            filename=Path(filename) if filename is not None else None,
            prompt_text=prompt,
        )

    def prompt(self) -> str:
        return self.prompt_text if self.prompt_text is not None else DEFAULT_PROMPT

    def open(self) -> None:
        """Open the configured database.

        Raises:
            NoFilenameConfigured: If no filename was configured.
            DatabaseAlreadyOpen: If a database is already open.
            StorageOpenFailed: If the storage engine cannot open the file.
        """
        if self.filename is None:
            raise NoFilenameConfigured()
        if self.database is not None:
            raise DatabaseAlreadyOpen(str(self.filename))

        try:
            if self.write:
                database = Database.open_rw(
                    self.filename,
                    cache_size=self.cache_size,
                    create=self.create,
                    block_size=self.block_size,
                )
            else:
                database = Database.open_ro(self.filename, cache_size=self.cache_size)
        except OSError as e:
            raise StorageOpenFailed(str(self.filename), e.strerror or str(e)) from e
        except (EngineError, ValueError) as e:
            raise StorageOpenFailed(str(self.filename), str(e)) from e

        self.database = database
        logger.debug("Opened %s %s", self.filename, database.mode.value)

    def close(self) -> None:
        if self.database is not None:
            self.database.close()
            self.database = None

    def current_database(self) -> Database:
        if self.database is None:
            raise NoDatabaseOpen()
        return self.database

    def dispatch(self, name: str, args: Optional[dict[str, str]] = None) -> list[str]:
        """Run a registered command against the open database.

        Raises:
            ModeSwitchUnsupported: For the reserved mode-switch command.
            UsageError: If name or args do not match the registry.
            NoDatabaseOpen: If open() has not succeeded.
            ToolError: Whatever the database command raises.
        """
        if name == MODE_SWITCH_COMMAND:
            raise ModeSwitchUnsupported()
        COMMANDS.validate(name, args)
        database = self.current_database()
        logger.debug("Dispatch %s %s", name, args or {})
        return database.dispatch(name, args)
