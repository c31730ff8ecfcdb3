import struct

import pytest

from fpgaprog.bitstream import BitstreamError
from fpgaprog.dfu_file import DfuFileParser, dfu_crc


def _dfu(payload, vid=0x1234, pid=0x5678, bcd_device=0x0100, bcd_dfu=0x011A):
    body = (payload
            + struct.pack("<HHHH", bcd_device, pid, vid, bcd_dfu)
            + b"UFD" + bytes([16]))
    return body + struct.pack("<I", dfu_crc(body))


def test_crc_of_empty_is_initial_value():
    assert dfu_crc(b"") == 0xFFFFFFFF


def test_crc_check_value():
    assert dfu_crc(b"123456789") == 0x340BC6D9


def test_parse_extracts_payload_and_ids():
    payload = bytes(range(40))
    parser = DfuFileParser(_dfu(payload))
    parser.parse()
    assert parser.data == payload
    assert parser.bit_length == len(payload) * 8
    assert parser.vendor_id == 0x1234
    assert parser.product_id == 0x5678


def test_header_strings():
    parser = DfuFileParser(_dfu(b"\xaa" * 20))
    parser.parse()
    assert parser.header["ucDfuSignature"] == "DFU"
    assert parser.header["idVendor"] == "0x1234"
    assert parser.header["idProduct"] == "0x5678"
    assert parser.header["bcdDFU"] == "0x011a"
    assert parser.header["bcdDevice"] == "0X0100"
    assert parser.header["bLength"] == "16"
    assert parser.header["dwCRC"] == f"0x{parser.dw_crc:08x}"


def test_parse_header_reports_suffix():
    parser = DfuFileParser(_dfu(b"\x01" * 10))
    assert parser.parse_header() is True
    assert parser.b_length == 16


def test_crc_mismatch_raises():
    raw = bytearray(_dfu(b"\x00" * 32))
    raw[0] ^= 0xFF
    parser = DfuFileParser(bytes(raw))
    with pytest.raises(BitstreamError):
        parser.parse()


def test_file_without_suffix_is_whole_payload():
    raw = bytes(range(64))
    parser = DfuFileParser(raw)
    assert parser.parse_header() is False
    parser.parse()
    assert parser.data == raw
    assert parser.header == {}
    assert parser.bit_length == 64 * 8


def test_too_small_file_raises():
    parser = DfuFileParser(b"\x00" * 16)
    with pytest.raises(BitstreamError):
        parser.parse()