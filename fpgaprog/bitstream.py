"""Common base for configuration bitstream parsers."""

from __future__ import annotations

import abc
import os
import sys
from pathlib import Path
from typing import Union

from .display import print_info, print_success

PathArg = Union[str, "os.PathLike[str]", None]


class BitstreamError(Exception):
    """Raised when a bitstream cannot be read or decoded."""


def reverse_byte(value: int) -> int:
    """Return the byte with its bit order reversed (LSB <-> MSB)."""
    result = 0
    for _ in range(8):
        result = (result << 1) | (value & 0x01)
        value >>= 1
    return result & 0xFF


def read_source(filename: PathArg) -> bytes:
    """Read a whole bitstream from a file, or from stdin when no name is given."""
    name = os.fspath(filename) if filename is not None else ""
    if name:
        try:
            return Path(name).read_bytes()
        except OSError as exc:
            raise BitstreamError(f"Error: fail to open {name}") from exc
    stdin = sys.stdin
    if stdin is not None and not stdin.isatty():
        return stdin.buffer.read()
    raise BitstreamError("Error: fail to parse. No filename or pipe")


class BitstreamParser(abc.ABC):
    """Holds a raw file image and the decoded data, length and header."""

    def __init__(self, raw_data: bytes, verbose: bool = False) -> None:
        self.raw_data = bytes(raw_data)
        self.verbose = verbose
        self.data = b""
        self.bit_length = 0
        self.header: dict[str, str] = {}
        self.filename = ""

    @classmethod
    def from_file(cls, filename: PathArg, **kwargs):
        """Build a parser from a file, or from stdin if filename is empty."""
        parser = cls(read_source(filename), **kwargs)
        parser.filename = os.fspath(filename) if filename else ""
        return parser

    @property
    def file_size(self) -> int:
        return len(self.raw_data)

    @abc.abstractmethod
    def parse(self) -> None:
        """Decode raw_data into data, bit_length and header."""

    def header_value(self, key: str) -> str:
        """Return the header entry for key."""
        try:
            return self.header[key]
        except KeyError:
            raise KeyError(f"Error key {key} not found") from None

    def display_header(self) -> None:
        """Print header entries sorted by key."""
        if not self.header:
            return
        print("bitstream header infos", flush=True)
        for key in sorted(self.header):
            print_info(f"{key}: ", eol=False)
            print_success(self.header[key])