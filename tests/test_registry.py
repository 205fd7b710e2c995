"""Tests for the command registry."""

import pytest

from gdbmtool.errors import MissingArgument, UnexpectedArgument, UnknownCommand
from gdbmtool.registry import COMMANDS, ArgSpec, CommandRegistry


class TestCommandTable:
    """Tests for the global command table."""

    def test_command_names(self):
        assert COMMANDS.names() == [
            "header",
            "dir",
            "len",
            "get",
            "insert",
            "try-insert",
            "remove",
            "keys",
            "values",
            "entries",
            "load",
            "dump",
        ]

    @pytest.mark.parametrize(
        "name,min_args",
        [("header", 0), ("get", 1), ("insert", 2), ("try-insert", 2), ("dump", 1)],
    )
    def test_min_args(self, name: str, min_args: int):
        assert COMMANDS.resolve(name).min_args == min_args

    def test_resolve_unknown_returns_none(self):
        assert COMMANDS.resolve("bogus") is None

    def test_format_help_lists_all(self):
        lines = COMMANDS.format_help([("exit", "Exit")])

        text = "\n".join(lines)
        for name in COMMANDS.names():
            assert name in text
        assert "insert KEY VALUE" in text
        assert lines[-1].startswith("exit")


class TestParse:
    """Tests for CommandRegistry.parse."""

    def test_parse_with_args(self):
        parsed = COMMANDS.parse(["insert", "k", "v"])

        assert parsed.name == "insert"
        assert parsed.args == {"KEY": "k", "VALUE": "v"}

    def test_parse_no_args(self):
        parsed = COMMANDS.parse(["len"])

        assert parsed.name == "len"
        assert parsed.args == {}

    def test_unknown_command(self):
        with pytest.raises(UnknownCommand) as exc_info:
            COMMANDS.parse(["insrt", "k", "v"])

        assert "Did you mean: insert" in exc_info.value.hints

    def test_missing_argument(self):
        with pytest.raises(MissingArgument, match="insert KEY VALUE"):
            COMMANDS.parse(["insert", "k"])

    def test_unexpected_argument(self):
        with pytest.raises(UnexpectedArgument, match="extra"):
            COMMANDS.parse(["get", "k", "extra"])

    def test_dump_format_is_optional(self):
        assert COMMANDS.parse(["dump", "f"]).args == {"FILE": "f"}
        assert COMMANDS.parse(["dump", "f", "binary"]).args == {
            "FILE": "f",
            "FORMAT": "binary",
        }
        assert COMMANDS.usage(COMMANDS.resolve("dump")) == "dump FILE [FORMAT]"


class TestValidate:
    """Tests for CommandRegistry.validate on keyed arguments."""

    def test_valid(self):
        parsed = COMMANDS.validate("get", {"KEY": "k"})

        assert parsed.name == "get"
        assert parsed.args == {"KEY": "k"}

    def test_no_args(self):
        assert COMMANDS.validate("len").args == {}

    def test_unknown_command(self):
        with pytest.raises(UnknownCommand, match="unknown command: gett"):
            COMMANDS.validate("gett", {})

    def test_missing_argument(self):
        with pytest.raises(MissingArgument) as exc_info:
            COMMANDS.validate("insert", {"KEY": "k"})

        assert exc_info.value.details["missing"] == ["VALUE"]

    def test_unknown_placeholder(self):
        with pytest.raises(UnexpectedArgument, match="KYE"):
            COMMANDS.validate("get", {"KEY": "k", "KYE": "x"})


class TestRegistry:
    """Tests for registering commands."""

    def test_duplicate_raises(self):
        registry = CommandRegistry()
        registry.register("a", "A")

        with pytest.raises(ValueError, match="already registered"):
            registry.register("a", "A again")

    def test_required_after_optional_raises(self):
        registry = CommandRegistry()

        with pytest.raises(ValueError):
            registry.register(
                "a", "A", [ArgSpec("X", "x", required=False), ArgSpec("Y", "y")]
            )

    def test_optional_argument(self):
        registry = CommandRegistry()
        registry.register("a", "A", [ArgSpec("X", "x"), ArgSpec("Y", "y", required=False)])

        assert registry.parse(["a", "1"]).args == {"X": "1"}
        assert registry.parse(["a", "1", "2"]).args == {"X": "1", "Y": "2"}
        assert registry.usage(registry.get("a")) == "a X [Y]"

    def test_check_handlers_mismatch(self):
        registry = CommandRegistry()
        registry.register("a", "A")
        registry.register("b", "B")

        with pytest.raises(RuntimeError, match="no handler for \\['b'\\]"):
            registry.check_handlers(["a"])
        with pytest.raises(RuntimeError, match="no command for \\['c'\\]"):
            registry.check_handlers(["a", "b", "c"])

        registry.check_handlers(["a", "b"])
