"""gdbmtool - examine and modify a key-value database from the shell.

Usage:
    from gdbmtool import Context

    context = Context.configure(filename="test.db", create=True)
    context.open()
    context.dispatch("insert", {"KEY": "a", "VALUE": "1"})
"""

from .common import PRODUCER
from .context import Context
from .database import Database, Mode
from .registry import COMMANDS

__version__ = PRODUCER["version"]

__all__ = [
    "COMMANDS",
    "Context",
    "Database",
    "Mode",
    "__version__",
]
