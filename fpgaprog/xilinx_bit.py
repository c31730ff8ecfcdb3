"""Parser for Xilinx .bit files."""

from __future__ import annotations

from .bitstream import BitstreamError, BitstreamParser, reverse_byte

_TEXT_FIELDS = {
    ord("b"): "part_name",
    ord("c"): "date",
    ord("d"): "hour",
}


class XilinxBitParser(BitstreamParser):
    """Decodes the tagged header of a .bit file and extracts the payload."""

    def __init__(self, raw_data: bytes, reverse_order: bool = False,
                 verbose: bool = False) -> None:
        super().__init__(raw_data, verbose)
        self.reverse_order = reverse_order

    def _be16(self, pos: int) -> int:
        if pos + 2 > len(self.raw_data):
            raise BitstreamError("truncated bit file header")
        return int.from_bytes(self.raw_data[pos:pos + 2], "big")

    def _parse_design_field(self, text: str) -> None:
        name, _, rest = text.partition(";")
        user, _, tool = rest.partition(";")
        self.header["design_name"] = name
        self.header["userID"] = user.partition("=")[2]
        self.header["toolVersion"] = tool.partition("=")[2]

    def _parse_header(self) -> int:
        raw = self.raw_data
        pos = self._be16(0) + 2
        self._be16(pos)
        pos += 2
        while True:
            if pos >= len(raw):
                raise BitstreamError("bit file header has no data length field")
            kind = raw[pos]
            pos += 1
            if kind == ord("e"):
                length = 4
            else:
                length = self._be16(pos)
                pos += 2
            field = raw[pos:pos + length]
            if len(field) != length:
                raise BitstreamError("truncated bit file header")
            pos += length

            if kind == ord("e"):
                self.bit_length = int.from_bytes(field, "big")
                return pos
            text = field.decode("latin-1").rstrip("\x00")
            if kind == ord("a"):
                self._parse_design_field(text)
            elif kind in _TEXT_FIELDS:
                self.header[_TEXT_FIELDS[kind]] = text

    def parse(self) -> None:
        """Read the header fields, then keep the rest of the file as data."""
        start = self._parse_header()
        payload = self.raw_data[start:]
        if self.reverse_order:
            payload = bytes(reverse_byte(b) for b in payload)
        self.data = payload
        self.bit_length = len(payload) * 8