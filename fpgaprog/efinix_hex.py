"""Parser for Efinix .hex files (one hexadecimal byte per line)."""

from __future__ import annotations

from .bitstream import BitstreamError, BitstreamParser


class EfinixHexParser(BitstreamParser):
    """Turns each text line into one data byte."""

    def __init__(self, raw_data: bytes, reverse_order: bool = False) -> None:
        super().__init__(raw_data, verbose=False)
        self.reverse_order = reverse_order

    def parse(self) -> None:
        """Convert every line to a byte; lines are kept in file order."""
        lines = self.raw_data.decode("latin-1").split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        values = bytearray()
        for number, line in enumerate(lines, start=1):
            try:
                values.append(int(line, 16) & 0xFF)
            except ValueError as exc:
                raise BitstreamError(
                    f"line {number}: invalid hexadecimal value {line!r}") from exc
        self.data = bytes(values)
        self.bit_length = len(self.data) * 8