"""Command registry for defining, documenting and validating commands.

The registry is the single source of truth for the database command surface.
The single-command, interactive and piped modes all parse their tokens through
the same table, so they accept exactly the same commands and arguments.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional
import difflib

from .errors import MissingArgument, UnexpectedArgument, UnknownCommand


@dataclass(frozen=True)
class ArgSpec:
    """A named positional argument of a command."""

    name: str
    help: str
    required: bool = True


@dataclass(frozen=True)
class CommandDescriptor:
    """Definition of a command in the registry."""

    name: str
    description: str
    args: tuple[ArgSpec, ...] = ()

    @property
    def min_args(self) -> int:
        return sum(1 for a in self.args if a.required)

    @property
    def placeholders(self) -> str:
        """Argument placeholders, e.g. "KEY VALUE" or "KEY [VALUE]"."""
        return " ".join(a.name if a.required else f"[{a.name}]" for a in self.args)

    def to_dict(self) -> dict:
        """Convert to dictionary for listing."""
        return {
            "name": self.name,
            "description": self.description,
            "args": [a.name for a in self.args],
            "min_args": self.min_args,
        }


@dataclass(frozen=True)
class ParsedCommand:
    """A command line validated against the registry."""

    name: str
    args: dict[str, str] = field(default_factory=dict)


class CommandRegistry:
    """Central registry for all database commands."""

    def __init__(self):
        self._commands: dict[str, CommandDescriptor] = {}

    def register(
        self,
        name: str,
        description: str,
        args: Iterable[ArgSpec] = (),
    ) -> CommandDescriptor:
        """Register a command.

        Args:
            name: Command name as typed by the user (e.g., try-insert).
            description: One-line summary for help output.
            args: Ordered positional arguments.

        Returns:
            The registered descriptor.
        """
        if name in self._commands:
            raise ValueError(f"Command already registered: {name}")

        args = tuple(args)
        seen_optional = False
        for arg in args:
            if arg.required and seen_optional:
                raise ValueError(f"Required argument after optional one: {name} {arg.name}")
            seen_optional = seen_optional or not arg.required

        descriptor = CommandDescriptor(name=name, description=description, args=args)
        self._commands[name] = descriptor
        return descriptor

    def get(self, name: str) -> Optional[CommandDescriptor]:
        """Get a command by name, or None if not registered."""
        return self._commands.get(name)

    resolve = get

    def names(self) -> list[str]:
        """All command names in registration order."""
        return list(self._commands)

    def list_all(self) -> list[CommandDescriptor]:
        """List all registered commands."""
        return list(self._commands.values())

    def __contains__(self, name: str) -> bool:
        return name in self._commands

    def suggest_similar(self, unknown: str, limit: int = 3) -> list[str]:
        """Suggest similar command names for typos."""
        return difflib.get_close_matches(
            unknown, self.names(), n=limit, cutoff=0.6
        )

    def usage(self, descriptor: CommandDescriptor) -> str:
        """Usage string for a command, e.g. "insert KEY VALUE"."""
        if descriptor.args:
            return f"{descriptor.name} {descriptor.placeholders}"
        return descriptor.name

    def format_help(self, extra: Iterable[tuple[str, str]] = ()) -> list[str]:
        """Render help lines for every command.

        Args:
            extra: Additional (usage, description) pairs, e.g. shell built-ins.

        Returns:
            One line per command, usage column padded to a common width.
        """
        rows = [(self.usage(d), d.description) for d in self._commands.values()]
        rows.extend(extra)
        width = max(len(u) for u, _ in rows)
        return [f"{u.ljust(width)}  {d}" for u, d in rows]

    def parse(self, tokens: list[str]) -> ParsedCommand:
        """Validate a tokenized command line.

        Args:
            tokens: Command name followed by its arguments.

        Returns:
            ParsedCommand with arguments keyed by placeholder name.

        Raises:
            UnknownCommand: If the name is not registered.
            MissingArgument: If fewer than min_args arguments were given.
            UnexpectedArgument: If more arguments than placeholders were given.
        """
        if not tokens:
            raise ValueError("empty command line")

        name, provided = tokens[0], tokens[1:]
        descriptor = self.get(name)
        if descriptor is None:
            raise UnknownCommand(name, self.suggest_similar(name))

        if len(provided) < descriptor.min_args:
            missing = [a.name for a in descriptor.args[len(provided):] if a.required]
            raise MissingArgument(self.usage(descriptor), missing)

        if len(provided) > len(descriptor.args):
            raise UnexpectedArgument(
                self.usage(descriptor), provided[len(descriptor.args):]
            )

        args = {spec.name: value for spec, value in zip(descriptor.args, provided)}
        return ParsedCommand(name=name, args=args)

    def validate(self, name: str, args: Optional[dict[str, str]] = None) -> ParsedCommand:
        """Validate arguments already keyed by placeholder name.

        Raises:
            UnknownCommand: If the name is not registered.
            MissingArgument: If a required placeholder has no value.
            UnexpectedArgument: If a key names no placeholder of the command.
        """
        descriptor = self.get(name)
        if descriptor is None:
            raise UnknownCommand(name, self.suggest_similar(name))

        args = dict(args or {})
        missing = [a.name for a in descriptor.args if a.required and a.name not in args]
        if missing:
            raise MissingArgument(self.usage(descriptor), missing)

        known = {a.name for a in descriptor.args}
        extra = [key for key in args if key not in known]
        if extra:
            raise UnexpectedArgument(self.usage(descriptor), extra)

        return ParsedCommand(name=name, args=args)

    def check_handlers(self, handlers: Iterable[str]) -> None:
        """Check that handlers and registered commands correspond one to one.

        Raises:
            RuntimeError: Naming commands without a handler or handlers
                without a command.
        """
        handlers = set(handlers)
        registered = set(self._commands)
        unhandled = sorted(registered - handlers)
        unregistered = sorted(handlers - registered)
        if unhandled or unregistered:
            raise RuntimeError(
                f"Command table mismatch: no handler for {unhandled}, "
                f"no command for {unregistered}"
            )


KEY = ArgSpec("KEY", "Key to look up")
VALUE = ArgSpec("VALUE", "Value to set")
FORMAT = ArgSpec("FORMAT", "Dump format", required=False)

# Global registry instance
COMMANDS = CommandRegistry()

COMMANDS.register("header", "Display database header")
COMMANDS.register("dir", "Display database directory")
COMMANDS.register("len", "Display number of entries in the database")
COMMANDS.register("get", "Retrieve and display value for specified KEY", [KEY])
COMMANDS.register(
    "insert",
    "Insert VALUE for specified KEY, showing the old value if there was one",
    [ArgSpec("KEY", "Key to insert"), VALUE],
)
COMMANDS.register(
    "try-insert",
    "Try inserting VALUE for specified KEY, failing if the key is already used",
    [ArgSpec("KEY", "Key to insert"), VALUE],
)
COMMANDS.register(
    "remove",
    "Remove value for specified KEY, showing the old value if there was one",
    [KEY],
)
COMMANDS.register("keys", "Display all keys")
COMMANDS.register("values", "Display all values")
COMMANDS.register("entries", "Display all key => value pairs")
COMMANDS.register(
    "load",
    "Load entries from a dump FILE (ASCII or binary, detected)",
    [ArgSpec("FILE", "Dump file to read")],
)
COMMANDS.register(
    "dump",
    "Write all entries to FILE in FORMAT: ascii (default) or binary",
    [ArgSpec("FILE", "Dump file to create"), FORMAT],
)
