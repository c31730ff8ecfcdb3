"""Parser for USB DFU firmware files (payload plus optional DFU suffix)."""

from __future__ import annotations

import zlib

from .bitstream import BitstreamError, BitstreamParser
from .display import print_warn

_MIN_SIZE = 16


def dfu_crc(data: bytes) -> int:
    """CRC-32 as used by the DFU suffix: initial value 0xFFFFFFFF, no final xor."""
    return zlib.crc32(data) ^ 0xFFFFFFFF


def _le16(raw: bytes, pos: int) -> int:
    return int.from_bytes(raw[pos:pos + 2], "little")


class DfuFileParser(BitstreamParser):
    """Reads a DFU file, decodes its suffix and checks the CRC."""

    def __init__(self, raw_data: bytes, verbose: bool = False) -> None:
        super().__init__(raw_data, verbose)
        self.bcd_dfu = 0
        self.vendor_id = 0
        self.product_id = 0
        self.bcd_device = 0
        self.dw_crc = 0
        self.b_length = 0

    def parse_header(self) -> bool:
        """Decode the suffix; return False when the file carries none."""
        raw = self.raw_data
        size = len(raw)
        if size <= _MIN_SIZE:
            raise BitstreamError("file too small to hold a DFU suffix and data")

        signature = raw[size - 8:size - 5][::-1]
        if signature != b"DFU":
            if self.verbose:
                print_warn("Not a DFU file")
            return False

        self.dw_crc = int.from_bytes(raw[size - 4:], "little")
        self.b_length = raw[size - 5]
        self.bcd_dfu = _le16(raw, size - 10)
        self.vendor_id = _le16(raw, size - 12)
        self.product_id = _le16(raw, size - 14)
        self.bcd_device = _le16(raw, size - 16)

        self.header = {
            "dwCRC": f"0x{self.dw_crc:08x}",
            "bLength": str(self.b_length),
            "ucDfuSignature": signature.decode("ascii"),
            "bcdDFU": f"0x{self.bcd_dfu:04x}",
            "idVendor": f"0x{self.vendor_id:04x}",
            "idProduct": f"0x{self.product_id:04x}",
            "bcdDevice": f"0X{self.bcd_device:04x}",
        }
        return True

    def parse(self) -> None:
        """Extract the payload and verify the suffix CRC when present."""
        has_suffix = self.parse_header()
        raw = self.raw_data
        self.data = raw[:max(len(raw) - self.b_length, 0)]

        if has_suffix:
            crc = dfu_crc(raw[:-4])
            if crc != self.dw_crc:
                raise BitstreamError(
                    "Error: CRC didn't match computed value: "
                    f"{crc:08x} instead of {self.dw_crc:08x}")

        self.bit_length = len(self.data) * 8