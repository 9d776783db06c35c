"""Argument parsing functionality for dotdeps."""

import argparse
from constants import Constants


def _output_options():
    """Options shared by every command: machine-readable output."""
    options = argparse.ArgumentParser(add_help=False)
    options.add_argument("--json",
                         dest="JSON",
                         help="Print results as JSON on stdout",
                         action="store_true")
    return options


def _dry_run_options():
    options = argparse.ArgumentParser(add_help=False)
    options.add_argument("-n", "--dry-run",
                         dest="DRY_RUN",
                         help="Show what would be done without changing anything",
                         action="store_true")
    return options


def build_parser():
    """Builds the argument parser."""
    parser = argparse.ArgumentParser(
        prog=Constants.PROG_NAME,
        description=(
            "dotdeps - fetch dependency source code into .deps/ for reading"
        ),
        add_help=True,
    )

    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level (default: $DOTDEPS_LOG_LEVEL or INFO)",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (JSON, YAML or YML)",
                        action="store",
                        type=str)
    parser.add_argument("--clean",
                        dest="CLEAN",
                        help="Remove the project's link directory (same as the 'clean' command)",
                        action="store_true")
    parser.set_defaults(JSON=False, DRY_RUN=False)

    output = _output_options()
    dry_run = _dry_run_options()
    sub = parser.add_subparsers(dest="command", metavar="<command>")

    add = sub.add_parser("add",
                         parents=[output, dry_run],
                         help="Fetch a dependency and link it under .deps/")
    add.add_argument("refs",
                     metavar="<ecosystem>:<package>[@<version>]",
                     nargs="+",
                     help="Dependency reference, e.g. python:requests or node:@types/node@20.1.0")

    remove = sub.add_parser("remove", aliases=["rm"],
                            parents=[output, dry_run],
                            help="Remove a dependency link (the cache is kept)")
    remove.add_argument("refs",
                        metavar="<ecosystem>:<package>",
                        nargs="+",
                        help="Dependency reference")

    sub.add_parser("list", aliases=["ls"],
                   parents=[output],
                   help="List linked dependencies")
    sub.add_parser("clean",
                   parents=[output, dry_run],
                   help="Remove the project's link directory")
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None and not args.CLEAN:
        parser.error("a command is required (add, remove, list, clean)")
    if args.command is not None and args.CLEAN:
        parser.error("--clean cannot be combined with a command")
    # normalize aliases so callers match on one name
    args.command = {"rm": "remove", "ls": "list"}.get(args.command, args.command) or "clean"
    return args
