"""Parser for Gowin .fs files (ASCII '0'/'1' bitstreams)."""

from __future__ import annotations

from .bitstream import BitstreamError, BitstreamParser
from .bitstream import reverse_byte as _reverse
from .display import print_info, print_success, print_warn

_U64 = (1 << 64) - 1

# Number of configuration lines per device, indexed by IDCODE.
_LINES_BY_IDCODE = {
    0x0900281B: 274,   # GW1N-1
    0x0900381B: 274,   # GW1N-1S
    0x0100681B: 274,   # GW1NZ-1
    0x0100181B: 494,   # GW1N-2
    0x1100181B: 494,   # GW1N-2B
    0x0300081B: 494,   # GW1NS-2
    0x0300181B: 494,   # GW1NSx-2C
    0x0100381B: 494,   # GW1N-4(ES)
    0x1100381B: 494,   # GW1N-4B
    0x0100481B: 712,   # GW1N-6
    0x1100581B: 712,   # GW1N-9
    0x0000081B: 1342,  # GW2A-18
    0x0000281B: 2038,  # GW2A-55
}
# Devices whose address length is not a multiple of a byte.
_PADDED_IDCODES = {0x0100481B, 0x1100581B}


def bits_to_value(bits: str) -> int:
    """Convert a string of '1'/'0' characters (MSB first) to an integer."""
    value = 0
    for char in bits:
        value = (value << 1) | (char == "1")
    return value


def _chunk(bits: str, start: int, width: int) -> int:
    return bits_to_value(bits[start:start + width].ljust(width, "0"))


class FsParser(BitstreamParser):
    """Decodes the header of an .fs file, packs its bits and computes the checksum."""

    def __init__(self, raw_data: bytes, reverse_byte: bool = False,
                 verbose: bool = False) -> None:
        super().__init__(raw_data, verbose)
        self.reverse_order = reverse_byte
        self.checksum = 0
        self.idcode = 0
        self.compressed = False
        self._end_header = 0
        self._zero8 = 0xFF
        self._zero4 = 0xFF
        self._zero2 = 0xFF
        self._lines: list[str] = []

    def _parse_header(self) -> None:
        text = self.raw_data.decode("latin-1")
        line_index = 0
        for line in text.split("\n"):
            if not line:
                break
            if line.startswith("/"):
                continue
            self._lines.append(line)

            key = _chunk(line, 0, 8) & 0x7F
            val = bits_to_value(line) & _U64

            if key == 0x06:
                self.idcode = val & 0xFFFFFFFF
                self.header["idcode"] = f"{self.idcode:08x}"
            elif key == 0x0A:
                self.header["CheckSum"] = f"{val & 0xFFFF:04x}"
            elif key == 0x0B:
                self.header["SecurityBit"] = "ON"
            elif key == 0x10:
                self.header["loading_rate"] = str(0xFF & (val >> 16))
                self.compressed = bool(0x01 & (val >> 13))
                self.header["Compress"] = "ON" if self.compressed else "OFF"
                self.header["ProgramDoneBypass"] = (
                    "ON" if 0x01 & (val >> 12) else "OFF")
            elif key == 0x51:
                self._zero8 = 0xFF & (val >> 16)
                self._zero4 = 0xFF & (val >> 8)
                self._zero2 = 0xFF & val
            elif key == 0x52:
                self.header["SPIAddr"] = f"{val & 0xFFFFFFFF:08x}"
            elif key == 0x3B:
                self.header["CRCCheck"] = "ON" if 0x01 & (val >> 23) else "OFF"
                self.header["ConfDataLength"] = str(0xFFFF & val)
                self._end_header = line_index

            line_index += 1

    def _decompress(self, bits: str) -> str:
        out = []
        for i in range(0, len(bits), 8):
            code = _chunk(bits, i, 8)
            if code == self._zero8:
                out.append("0" * 64)
            elif code == self._zero4:
                out.append("0" * 32)
            elif code == self._zero2:
                out.append("0" * 16)
            else:
                out.append(bits[i:i + 8])
        return "".join(out)

    def parse(self) -> None:
        """Pack all lines into bytes and compute the configuration checksum."""
        print_info(f"Parse {self.filename}: ")
        self._parse_header()

        packed = bytearray()
        for line in self._lines:
            for i in range(0, len(line), 8):
                value = _chunk(line, i, 8)
                packed.append(_reverse(value) if self.reverse_order else value)
        self.data = bytes(packed)
        self.bit_length = len(self.data) * 8

        if self.idcode == 0:
            print_warn("Warning: IDCODE not found")

        nb_line = _LINES_BY_IDCODE.get(self.idcode)
        if nb_line is None:
            print_warn("Warning: Unknown IDCODE")
            nb_line = 0
        padding = 0
        if self.idcode in _PADDED_IDCODES:
            padding = 4
            if self.compressed:
                padding += 5 * 8

        conf_length = self.header.get("ConfDataLength")
        if conf_length is None:
            raise BitstreamError("ConfDataLength not found in header")
        nb_line = min(nb_line, int(conf_length))

        lines = self._lines[self._end_header + 1:][:nb_line]
        lines += [""] * (nb_line - len(lines))

        drop = 6 * 8
        if self.header.get("CRCCheck") == "ON":
            drop += 2 * 8

        pieces = []
        for line in lines:
            if self.compressed:
                if len(line) < drop:
                    raise BitstreamError("configuration line shorter than its trailer")
                kept = self._decompress(line[:len(line) - drop])
            else:
                kept = line[:len(line) - drop] if len(line) >= drop else line
            if padding > len(kept):
                raise BitstreamError("configuration line shorter than its padding")
            pieces.append(kept[padding:])
        bits = "".join(pieces)

        checksum = 0
        for pos in range(0, len(bits), 16):
            checksum = (checksum + _chunk(bits, pos, 16)) & 0xFFFF
        self.checksum = checksum

        if self.verbose:
            print(f"checksum 0x{self.checksum:04x}", flush=True)
        print_success("Done")