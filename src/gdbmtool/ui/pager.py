"""Output paging for interactive sessions.

Output that fits on the terminal is printed directly. Longer output is fed
to an external pager (PAGER, or less) which the caller waits for before the
next prompt.

Key design principles:
- One pager process per display() call, always waited for
- No curses or terminal manipulation of our own
- Falls back to direct printing when no pager can be started
"""

import os
import shlex
import shutil
import subprocess
import sys
from typing import Optional, TextIO

DEFAULT_PAGER = "less -FRSX"


def terminal_rows() -> int:
    """Current terminal height in rows (24 when it cannot be determined)."""
    try:
        return shutil.get_terminal_size().lines
    except (ValueError, OSError):
        return 24


def should_paginate(line_count: int, rows: Optional[int] = None) -> bool:
    """Determine if output should go through the pager.

    Args:
        line_count: Number of lines in output.
        rows: Terminal height (default: current terminal height).

    Returns:
        True if the output does not fit on the screen.
    """
    if rows is None:
        rows = terminal_rows()
    return line_count > rows


def pager_command() -> list[str]:
    """Pager argv from the PAGER environment variable.

    The default pager flags for less:
        -F: Quit if content fits on one screen
        -R: Pass through ANSI color codes
        -S: Chop long lines (don't wrap)
        -X: Don't clear screen on exit
    """
    return shlex.split(os.environ.get("PAGER", "") or DEFAULT_PAGER)


def write_lines(lines: list[str], out: Optional[TextIO] = None) -> None:
    if out is None:
        out = sys.stdout
    for line in lines:
        print(line, file=out)


def page(lines: list[str], out: Optional[TextIO] = None) -> bool:
    """Feed lines to the pager and wait for it to exit.

    Returns:
        False if no pager could be started (nothing was written).
    """
    try:
        proc = subprocess.Popen(pager_command(), stdin=subprocess.PIPE, text=True)
    except (OSError, ValueError, subprocess.SubprocessError):
        return False

    if out is not None:
        out.flush()
    try:
        # communicate() closes the pager's input and ignores a pager
        # that quit before reading everything.
        proc.communicate(input="".join(line + "\n" for line in lines))
    finally:
        proc.wait()
    return True


def display(
    lines: list[str],
    out: Optional[TextIO] = None,
    rows: Optional[int] = None,
) -> None:
    """Show output lines, through the pager when they do not fit.

    Args:
        lines: Output lines in display order.
        out: Stream for direct output (default: stdout).
        rows: Terminal height (default: current terminal height).
    """
    if should_paginate(len(lines), rows) and page(lines, out):
        return
    write_lines(lines, out)
