from __future__ import annotations

import logging
import os
import sys

from . import __version__
from .tui import PRWatchApp

LOG_ENV_VAR = "PRWATCH_LOG"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

HELP_TEXT = """prwatch - Live CI and review status of your open pull requests

Usage:
  prwatch                      Launch the dashboard
  prwatch --log-file PATH      Launch and write logs to PATH
  prwatch --version            Show version information
  prwatch --help               Show this help message

Options:
  -h, --help           Show this help message
  -v, --version        Show version information
  --log-file PATH      Log file (default: $PRWATCH_LOG, logging off when unset)

Keys:
  q quit, s edit repos, r refresh, o open PR, f rerun failed runs,
  tab switch pane, up/k down/j move, enter select
"""


def configure_logging(path: str | None) -> None:
    """Send logs to a file; the terminal belongs to the dashboard.

    Args:
        path: Log file path, or None to leave logging unconfigured.
    """
    if not path:
        return
    logging.basicConfig(filename=path, level=logging.DEBUG, format=LOG_FORMAT)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the `prwatch` console script.

    Args:
        argv: Arguments without the program name; defaults to `sys.argv[1:]`.

    Returns:
        Process exit code.
    """
    args = list(sys.argv[1:] if argv is None else argv)
    log_file = os.environ.get(LOG_ENV_VAR)
    while args:
        arg = args.pop(0)
        if arg in ("--version", "-v"):
            print(f"prwatch {__version__}")
            return 0
        if arg in ("--help", "-h"):
            print_help()
            return 0
        if arg == "--log-file":
            if not args:
                print("Error: --log-file needs a path", file=sys.stderr)
                return 2
            log_file = args.pop(0)
            continue
        print(f"Error: unknown argument {arg!r}", file=sys.stderr)
        print_help()
        return 2

    configure_logging(log_file)
    PRWatchApp().run()
    return 0


def print_help() -> None:
    print(HELP_TEXT)
