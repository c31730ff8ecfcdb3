"""Parser for Anlogic .bit files."""

from __future__ import annotations

from .bitstream import BitstreamError, BitstreamParser, reverse_byte
from .display import print_info


class AnlogicBitParser(BitstreamParser):
    """Reads the '#' text header and the length-prefixed data blocks."""

    def __init__(self, raw_data: bytes, reverse_order: bool = False,
                 verbose: bool = False) -> None:
        super().__init__(raw_data, verbose)
        self.reverse_order = reverse_order

    def _parse_header(self) -> int:
        raw = self.raw_data
        pos = 0
        while True:
            newline = raw.find(b"\n", pos)
            if newline == -1:
                raise BitstreamError("header must end with an empty line")
            line = raw[pos:newline].decode("latin-1")
            pos = newline + 1
            if not line:
                if self.verbose:
                    print_info("header end")
                break
            if not line.startswith("#"):
                raise BitstreamError("header must start with #")
            content = line[2:]
            key, sep, _ = content.partition(":")
            if sep:
                self.header[key] = content[len(key) + 2:]
            else:
                self.header["tool"] = content

        if pos >= len(raw) or raw[pos] != 0x00:
            raise BitstreamError("Header must end with 0x00 (binary) bit")
        return pos

    def parse(self) -> None:
        """Decode the header and concatenate every data block."""
        raw = self.raw_data
        pos = self._parse_header()
        blocks = []
        while True:
            if pos + 2 > len(raw):
                raise BitstreamError("truncated block length")
            length = int.from_bytes(raw[pos:pos + 2], "big")
            pos += 2
            if length & 7:
                raise BitstreamError("block length is not a multiple of 8 bits")
            length >>= 3
            if pos + length > len(raw):
                raise BitstreamError("block exceeds end of file")
            blocks.append(raw[pos:pos + length])
            pos += length
            if pos >= len(raw):
                break

        data = b"".join(blocks)
        if self.reverse_order:
            data = bytes(reverse_byte(b) for b in data)
        self.data = data
        self.bit_length = len(data) * 8