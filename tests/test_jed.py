import pytest

from fpgaprog.bitstream import BitstreamError
from fpgaprog.jed import JedParser

SAMPLE = (
    "Generated by a tool\n"
    "\x02*\n"
    "QF16*\n"
    "QP20*\n"
    "N DATA*\n"
    "L0000\n"
    "10000000\n"
    "01000000*\n"
    "C0003*\n"
    "\x030000\n"
)


def _fuses(value):
    return "".join("1" if (value >> bit) & 1 else "0" for bit in range(8))


def _build(payload, offset=0, note="NOTE EBR_INIT DATA", crlf=False):
    body = [
        "\x02*",
        f"QF{len(payload) * 8}*",
        "QP48*",
        note + "*",
        f"L{offset:04d}",
    ]
    rows = [_fuses(b) for b in payload]
    rows[-1] += "*"
    body += rows
    body.append(f"C{sum(payload) & 0xFFFF:04X}*")
    body.append("\x030000")
    sep = "\r\n" if crlf else "\n"
    return (sep.join(body) + sep).encode("latin-1")


def test_sample_parses_counts_and_note():
    parser = JedParser(SAMPLE.encode(), verbose=False)
    parser.parse()
    assert parser.fuse_count == 16
    assert parser.pin_count == 20
    assert parser.checksum == 3
    assert parser.section_count == 1
    assert parser.offset_for_section(0) == 0
    assert parser.note_for_section(0) == "DATA"


def test_sample_packs_first_fuse_in_bit_zero():
    parser = JedParser(SAMPLE.encode())
    parser.parse()
    assert parser.data_for_section(0) == [b"\x01", b"\x02"]


@pytest.mark.parametrize("crlf", [False, True])
@pytest.mark.parametrize("payload", [b"\x00", b"\xa5\x5a\xff", bytes(range(40))])
def test_round_trip(payload, crlf):
    parser = JedParser(_build(payload, offset=128, crlf=crlf))
    parser.parse()
    assert b"".join(parser.data_for_section(0)) == payload
    assert parser.offset_for_section(0) == 128
    assert parser.note_for_section(0) == "EBR_INIT DATA"
    assert parser.sections[0].length == len(payload) * 8


def test_single_line_l_field():
    text = "\x02*\nQF16*\nL0016 1111111100000000*\nC00FF*\n\x03\n"
    parser = JedParser(text.encode())
    parser.parse()
    assert parser.offset_for_section(0) == 16
    assert parser.data_for_section(0) == [b"\xff\x00"]


def test_checksum_invariant_over_sections():
    parser = JedParser(_build(b"\x10\x20\x30"))
    parser.parse()
    total = sum(sum(chunk) for s in parser.sections for chunk in s.data)
    assert total & 0xFFFF == parser.checksum


def test_wrong_checksum_raises():
    bad = SAMPLE.replace("C0003*", "C0004*")
    with pytest.raises(BitstreamError):
        JedParser(bad.encode()).parse()


def test_wrong_fuse_count_raises():
    bad = SAMPLE.replace("QF16*", "QF17*")
    with pytest.raises(BitstreamError):
        JedParser(bad.encode()).parse()


def test_missing_stx_raises():
    with pytest.raises(BitstreamError):
        JedParser(b"QF16*\nC0000*\n").parse()


def test_unknown_q_qualifier_raises():
    bad = SAMPLE.replace("QP20*", "QX20*")
    with pytest.raises(BitstreamError):
        JedParser(bad.encode()).parse()


def test_unknown_field_raises():
    bad = SAMPLE.replace("QP20*", "Z1*")
    with pytest.raises(BitstreamError):
        JedParser(bad.encode()).parse()


@pytest.mark.parametrize(
    "line, expected",
    [("UH1F*", 0x1F), ("UA42*", 42)],
)
def test_user_code_forms(line, expected):
    text = SAMPLE.replace("QP20*", line)
    parser = JedParser(text.encode())
    parser.parse()
    assert parser.user_code == expected


def test_user_code_binary():
    text = SAMPLE.replace("QP20*", "U00000101*")
    parser = JedParser(text.encode())
    parser.parse()
    assert parser.user_code == 0b101


def test_e_field_and_settings():
    text = SAMPLE.replace(
        "QP20*", "G1*\nF0*\nE1000\n1000000000000000*")
    parser = JedParser(text.encode())
    parser.parse()
    assert parser.security_settings == 1
    assert parser.default_fuse_state == 0
    assert parser.features_row == 1
    assert parser.feabits == 1


def test_stx_on_same_line_as_field():
    text = "\x02QF8*\nL0000 00000000*\nC0000*\n\x03\n"
    parser = JedParser(text.encode())
    parser.parse()
    assert parser.fuse_count == 8
    assert parser.data_for_section(0) == [b"\x00"]


def test_display_header_lists_areas(capsys):
    parser = JedParser(SAMPLE.encode())
    parser.parse()
    parser.display_header()
    out = capsys.readouterr().out
    assert "Pin Count  : 20" in out
    assert "Fuse Count : 16" in out
    assert "area[0] 0 16 DATA" in out
    assert "Single Boot from Configuration Flash" in out


def test_header_before_stx_is_ignored():
    parser = JedParser(b"junk line\nmore junk\n" + _build(b"\x07"))
    parser.parse()
    assert b"".join(parser.data_for_section(0)) == b"\x07"