"""Coloured status messages for the console."""

from __future__ import annotations

import sys
from typing import TextIO

_RESET = "\x1b[0m"
_RED = "\x1b[31m"
_GREEN = "\x1b[32m"
_YELLOW = "\x1b[33m"
_BLUE = "\x1b[34m"


def _emit(stream: TextIO, color: str, message: str, eol: bool) -> None:
    if stream.isatty():
        stream.write(f"{color}{message}{_RESET}")
    else:
        stream.write(message)
    if eol:
        stream.write("\n")
    stream.flush()


def print_error(message: str, eol: bool = True) -> None:
    """Write an error message to stderr, in red on a terminal."""
    _emit(sys.stderr, _RED, message, eol)


def print_warn(message: str, eol: bool = True) -> None:
    """Write a warning to stdout, in yellow on a terminal."""
    _emit(sys.stdout, _YELLOW, message, eol)


def print_info(message: str, eol: bool = True) -> None:
    """Write an informational message to stdout, in blue on a terminal."""
    _emit(sys.stdout, _BLUE, message, eol)


def print_success(message: str, eol: bool = True) -> None:
    """Write a success message to stdout, in green on a terminal."""
    _emit(sys.stdout, _GREEN, message, eol)