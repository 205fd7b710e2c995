"""Terminal presentation for gdbmtool.

Submodules:
- pager: Direct or paged display of command output

Usage:
    from gdbmtool.ui import display
"""

from .pager import (
    display,
    page,
    pager_command,
    should_paginate,
    terminal_rows,
    write_lines,
)

__all__ = [
    "display",
    "page",
    "pager_command",
    "should_paginate",
    "terminal_rows",
    "write_lines",
]
