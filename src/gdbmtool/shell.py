"""Execution modes: single command, interactive loop, piped batch.

All three modes tokenize with shell quoting rules, validate against the
command registry and dispatch through the session context, so they accept
the same command surface and report errors the same way. They differ only
in what happens after an error:

- single command: report and fail
- interactive: report and prompt again
- piped batch: report, stop reading and fail
"""

import logging
import os
import shlex
import sys
from typing import Callable, Optional, TextIO

from .common import version_string
from .context import Context
from .errors import IoError, ToolError, TokenizeError, UnexpectedArgument, print_error
from .registry import COMMANDS, CommandRegistry
from .ui.pager import display, write_lines

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

# Interactive-only commands, handled by the loop itself.
BUILTINS = {
    "exit": "Exit the interpreter",
    "help": "Display this list of commands",
    "version": "Display program name and version",
}


def tokenize(line: str) -> list[str]:
    """Split a command line using shell quoting rules.

    Raises:
        TokenizeError: On mismatched quotation marks.
    """
    try:
        return shlex.split(line)
    except ValueError:
        raise TokenizeError(line) from None


def run_tokens(
    context: Context,
    tokens: list[str],
    registry: CommandRegistry = COMMANDS,
) -> list[str]:
    """Validate tokens against the registry and dispatch them."""
    parsed = registry.parse(tokens)
    return context.dispatch(parsed.name, parsed.args)


def select_mode(has_command: bool, stdin_is_tty: bool) -> str:
    """Pick the execution mode: "single", "interactive" or "piped"."""
    if has_command:
        return "single"
    if stdin_is_tty:
        return "interactive"
    return "piped"


def help_lines(registry: CommandRegistry = COMMANDS) -> list[str]:
    return ["Available commands:"] + [
        f"  {line}" for line in registry.format_help(BUILTINS.items())
    ]


def _discard_stdout() -> None:
    """Point stdout at the null device after its reader went away.

    Keeps the interpreter's exit-time flush from failing a second time.
    """
    try:
        fileno = sys.stdout.fileno()
    except (OSError, ValueError):
        return
    devnull = os.open(os.devnull, os.O_WRONLY)
    try:
        os.dup2(devnull, fileno)
    finally:
        os.close(devnull)


def _emit(lines: list[str], out: Optional[TextIO], err: Optional[TextIO]) -> int:
    """Print command output, reporting a failed write as an I/O error."""
    if out is None:
        out = sys.stdout
    try:
        write_lines(lines, out)
        out.flush()
    except OSError as e:
        print_error(IoError("<stdout>", e.strerror or str(e)), err)
        if isinstance(e, BrokenPipeError) and out is sys.stdout:
            _discard_stdout()
        return EXIT_FAILURE
    return EXIT_SUCCESS


# =============================================================================
# Single command
# =============================================================================


def single_command(
    context: Context,
    tokens: list[str],
    out: Optional[TextIO] = None,
    err: Optional[TextIO] = None,
) -> int:
    """Run one command, print its output, return the exit code."""
    try:
        lines = run_tokens(context, tokens)
    except ToolError as e:
        print_error(e, err)
        return EXIT_FAILURE
    return _emit(lines, out, err)


# =============================================================================
# Interactive
# =============================================================================


def enable_line_editing() -> None:
    """Turn on readline editing and history for input(), where available."""
    try:
        import readline  # noqa: F401
    except ImportError:
        logger.debug("readline unavailable; line editing disabled")


def _builtin(tokens: list[str]) -> Optional[str]:
    name = tokens[0]
    if name not in BUILTINS:
        return None
    if len(tokens) > 1:
        raise UnexpectedArgument(name, tokens[1:])
    return name


def interactive(
    context: Context,
    read_line: Optional[Callable[[str], str]] = None,
    show: Optional[Callable[[list[str]], None]] = None,
    err: Optional[TextIO] = None,
) -> int:
    """Read-eval-print loop.

    Args:
        context: Session context.
        read_line: Line reader taking the prompt (default: input()).
        show: Output function (default: display(), which pages long output).
        err: Diagnostic stream (default: stderr).

    Returns:
        0 on exit, end of input or interrupt; 1 if the line reader fails.
    """
    if read_line is None:
        enable_line_editing()
        read_line = input
    if show is None:
        show = display
    if err is None:
        err = sys.stderr

    while True:
        try:
            line = read_line(context.prompt())
        except EOFError:
            print(file=err)
            return EXIT_SUCCESS
        except KeyboardInterrupt:
            print("\nInterrupted", file=err)
            return EXIT_SUCCESS
        except OSError as e:
            print_error(IoError("<stdin>", e.strerror or str(e)), err)
            return EXIT_FAILURE

        try:
            tokens = tokenize(line)
            if not tokens:
                continue
            builtin = _builtin(tokens)
            if builtin == "exit":
                return EXIT_SUCCESS
            elif builtin == "help":
                show(help_lines())
            elif builtin == "version":
                show([version_string()])
            else:
                show(run_tokens(context, tokens))
        except ToolError as e:
            print_error(e, err)
        except OSError as e:
            print_error(IoError("<stdout>", e.strerror or str(e)), err)
        except KeyboardInterrupt:
            # Ctrl-C during a command or while the pager runs
            print("\nInterrupted", file=err)
            return EXIT_SUCCESS


# =============================================================================
# Piped batch
# =============================================================================


def command_stream(
    context: Context,
    stream: TextIO,
    out: Optional[TextIO] = None,
    err: Optional[TextIO] = None,
) -> int:
    """Run one command per input line, stopping at the first failure.

    Blank lines and lines starting with '#' are skipped.

    Returns:
        0 if the stream was exhausted without error, 1 otherwise.
    """
    line_no = 0
    while True:
        try:
            line = stream.readline()
        except (OSError, UnicodeDecodeError) as e:
            print_error(IoError("<stdin>", f"input failure: {e}"), err)
            return EXIT_FAILURE
        if not line:
            return EXIT_SUCCESS
        line_no += 1

        try:
            tokens = tokenize(line)
            if not tokens or tokens[0].startswith("#"):
                continue
            lines = run_tokens(context, tokens)
        except ToolError as e:
            logger.debug("Batch stopped at line %d", line_no)
            print_error(e, err)
            return EXIT_FAILURE
        if _emit(lines, out, err) != EXIT_SUCCESS:
            return EXIT_FAILURE
