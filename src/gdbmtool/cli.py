"""Command-line interface for gdbmtool."""

import argparse
import logging
import os
import sys
from typing import Optional

from .common import version_string
from .context import Context
from .errors import OpenError
from .registry import COMMANDS
from .shell import command_stream, interactive, select_mode, single_command


def positive_int(text: str) -> int:
    """argparse type for SIZE arguments."""
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid size: {text}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError(f"size must be positive: {text}")
    return value


def build_parser() -> argparse.ArgumentParser:
    epilog = "commands:\n" + "\n".join(f"  {line}" for line in COMMANDS.format_help())
    epilog += (
        "\n\nWithout a command, commands are read from standard input: "
        "interactively on a terminal, one per line otherwise."
    )
    parser = argparse.ArgumentParser(
        prog="gdbmtool",
        description="Examine and modify a key-value database",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=version_string())
    parser.add_argument(
        "-r", "--read-only", action="store_true", help="Open database read-only"
    )
    parser.add_argument(
        "-c",
        "--create",
        action="store_true",
        help="Create a new database if the database file is missing",
    )
    parser.add_argument(
        "-b",
        "--block-size",
        type=positive_int,
        metavar="SIZE",
        help="Block size for new databases",
    )
    parser.add_argument(
        "--cache-size", type=positive_int, metavar="SIZE", help="Size of memory cache"
    )
    parser.add_argument("-p", "--prompt", help="Interactive prompt")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log debug messages to stderr"
    )
    parser.add_argument("file", nargs="?", metavar="FILE", help="Database filename")
    parser.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        metavar="COMMAND ...",
        help="Command to run (see below)",
    )
    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.read_only and (args.create or args.block_size is not None):
        parser.error("argument -r/--read-only: not allowed with --create or --block-size")

    # A command given without FILE lands in the FILE slot. An existing file
    # of the same name is still opened as the database.
    if args.file in COMMANDS and not os.path.exists(args.file):
        args.command = [args.file] + args.command
        args.file = None

    configure_logging(args.verbose)

    context = Context.configure(
        write=not args.read_only,
        create=args.create,
        cache_size=args.cache_size,
        block_size=args.block_size,
        filename=args.file,
        prompt=args.prompt,
    )

    if context.filename is not None:
        try:
            context.open()
        except OpenError as e:
            print(f"Failed to open database: {e.message}", file=sys.stderr)
            for hint in e.hints:
                print(f"  Hint: {hint}", file=sys.stderr)
            return 1

    try:
        mode = select_mode(bool(args.command), sys.stdin.isatty())
        if mode == "single":
            return single_command(context, args.command)
        elif mode == "interactive":
            return interactive(context)
        else:
            return command_stream(context, sys.stdin)
    finally:
        context.close()


if __name__ == "__main__":
    sys.exit(main())
