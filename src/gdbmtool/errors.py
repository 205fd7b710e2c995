"""Centralized error handling for gdbmtool.

This module provides:
- Standard error codes
- The ToolError exception hierarchy raised by the session runtime
- Helper functions for consistent error reporting

Every user-visible failure is a ToolError subclass carrying a stable code,
a message and optional hints, so all three execution modes report errors
the same way on the diagnostic stream.
"""

import sys
from typing import Optional


# =============================================================================
# Error Codes
# =============================================================================

# Open errors
NO_FILENAME = "NO_FILENAME"
STORAGE_OPEN_FAILED = "STORAGE_OPEN_FAILED"
ALREADY_OPEN = "ALREADY_OPEN"

# Session errors
NO_DATABASE_OPEN = "NO_DATABASE_OPEN"
MODE_SWITCH_UNSUPPORTED = "MODE_SWITCH_UNSUPPORTED"
READ_ONLY_VIOLATION = "READ_ONLY_VIOLATION"

# Input errors
UNKNOWN_COMMAND = "UNKNOWN_COMMAND"
MISSING_ARGUMENT = "MISSING_ARGUMENT"
UNEXPECTED_ARGUMENT = "UNEXPECTED_ARGUMENT"
INVALID_ARGUMENT = "INVALID_ARGUMENT"
TOKENIZE_ERROR = "TOKENIZE_ERROR"

# Data errors
STORAGE_ENGINE_ERROR = "STORAGE_ENGINE_ERROR"
NON_UTF8_VALUE = "NON_UTF8_VALUE"
IO_ERROR = "IO_ERROR"


# =============================================================================
# Exceptions
# =============================================================================


class ToolError(Exception):
    """Base class for all reportable gdbmtool errors.

    Attributes:
        code: Machine-readable error code.
        message: Human-readable error message.
        hints: Actionable suggestions for resolving the error.
        details: Context-specific error details.
    """

    code = "TOOL_ERROR"

    def __init__(
        self,
        message: str,
        hints: Optional[list[str]] = None,
        details: Optional[dict] = None,
    ):
        self.message = message
        self.hints = hints or []
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to error envelope dict."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "hints": self.hints,
                "details": self.details,
            }
        }

    def print_text(self, file=None) -> None:
        """Print error as human-readable text to file (default: stderr)."""
        if file is None:
            file = sys.stderr
        print(f"Error: {self.message}", file=file)
        for hint in self.hints:
            print(f"  Hint: {hint}", file=file)


class OpenError(ToolError):
    """Raised when the session cannot open its database."""


class NoFilenameConfigured(OpenError):
    code = NO_FILENAME

    def __init__(self):
        super().__init__(
            "no filename to open",
            hints=["Pass the database FILE on the command line"],
        )


class StorageOpenFailed(OpenError):
    code = STORAGE_OPEN_FAILED

    def __init__(self, path: str, reason: str):
        hints = []
        if "No such file" in reason:
            hints.append("Use --create to create a new database")
        super().__init__(
            f"{path}: {reason}",
            hints=hints,
            details={"path": path, "reason": reason},
        )


class DatabaseAlreadyOpen(OpenError):
    code = ALREADY_OPEN

    def __init__(self, path: str):
        super().__init__(
            f"database already open: {path}",
            details={"path": path},
        )


class NoDatabaseOpen(ToolError):
    code = NO_DATABASE_OPEN

    def __init__(self):
        super().__init__(
            "no current database",
            hints=["Pass the database FILE on the command line"],
        )


class ModeSwitchUnsupported(ToolError):
    code = MODE_SWITCH_UNSUPPORTED

    def __init__(self):
        super().__init__(
            "switching between read-only and read-write is not supported",
            hints=["Restart gdbmtool with or without --read-only"],
        )


class ReadOnlyViolation(ToolError):
    code = READ_ONLY_VIOLATION

    def __init__(self, command: str):
        super().__init__(
            "readonly database",
            hints=[f"'{command}' needs a database opened without --read-only"],
            details={"command": command},
        )


class UsageError(ToolError):
    """Raised when a command line does not match the command registry."""


class UnknownCommand(UsageError):
    code = UNKNOWN_COMMAND

    def __init__(self, name: str, suggestions: Optional[list[str]] = None):
        hints = [f"Did you mean: {s}" for s in suggestions or []]
        hints.append("Run: help")
        super().__init__(
            f"unknown command: {name}",
            hints=hints,
            details={"command": name},
        )


class MissingArgument(UsageError):
    code = MISSING_ARGUMENT

    def __init__(self, usage: str, missing: list[str]):
        super().__init__(
            f"missing argument {' '.join(missing)}; usage: {usage}",
            details={"usage": usage, "missing": missing},
        )


class UnexpectedArgument(UsageError):
    code = UNEXPECTED_ARGUMENT

    def __init__(self, usage: str, extra: list[str]):
        super().__init__(
            f"unexpected argument {' '.join(extra)}; usage: {usage}",
            details={"usage": usage, "extra": extra},
        )


class InvalidArgument(UsageError):
    code = INVALID_ARGUMENT

    def __init__(self, name: str, value: str, choices: list[str]):
        super().__init__(
            f"invalid {name}: {value}; expected one of: {', '.join(choices)}",
            details={"argument": name, "value": value, "choices": choices},
        )


class TokenizeError(ToolError):
    code = TOKENIZE_ERROR

    def __init__(self, line: str):
        super().__init__(
            "bad command: mismatched quotation marks",
            details={"line": line},
        )


class StorageEngineError(ToolError):
    """Wraps a failure reported by the storage engine, message verbatim."""

    code = STORAGE_ENGINE_ERROR


class NonUtf8Value(ToolError):
    code = NON_UTF8_VALUE

    def __init__(self, what: str, data: bytes):
        super().__init__(
            f"{what} is not valid UTF-8: {data[:32]!r}",
            details={"what": what, "length": len(data)},
        )


class IoError(ToolError):
    code = IO_ERROR

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"{path}: {reason}",
            details={"path": path, "reason": reason},
        )


# =============================================================================
# Output Helper
# =============================================================================


def print_error(error: ToolError, file=None) -> None:
    """Print error to the diagnostic stream.

    Args:
        error: The error to print.
        file: Output file (default: stderr).
    """
    error.print_text(file)
