"""Parser for JEDEC (.jed) fuse map files."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterator, List

from .bitstream import BitstreamError, BitstreamParser
from .display import print_error

_STX = "\x02"
_ETX = "\x03"

_DEC_RE = re.compile(r"\s*([+-]?\d+)")
_HEX_RE = re.compile(r"\s*([+-]?(?:0[xX])?[0-9a-fA-F]+)")

_BOOT_MODES = {
    0: "Single Boot from Configuration Flash",
    1: "Dual Boot from Configuration Flash then External if there is a failure",
    3: "Single Boot from External Flash",
}


def _scan_int(text: str, base: int = 10) -> int:
    """Read the leading integer of text, skipping leading blanks."""
    match = (_HEX_RE if base == 16 else _DEC_RE).match(text)
    if match is None:
        raise BitstreamError(f"no number found in {text!r}")
    return int(match.group(1), base)


def _pack_fuses(content: str) -> bytes:
    """Pack '0'/'1' characters into bytes, first fuse in bit 0."""
    packed = bytearray()
    for start in range(0, len(content), 8):
        chunk = content[start:start + 8]
        value = 0
        for bit, char in enumerate(chunk):
            if char == "1":
                value |= 1 << bit
        packed.append(value)
    return bytes(packed)


def _digits_lsb_first(digits: str) -> int:
    value = 0
    for position, char in enumerate(digits):
        value += (ord(char) - ord("0")) << position
    return value


@dataclass
class JedSection:
    """One fuse area introduced by an 'L' field."""

    offset: int
    data: List[bytes] = field(default_factory=list)
    length: int = 0
    note: str = ""

    def add_fuses(self, content: str) -> None:
        self.data.append(_pack_fuses(content))
        self.length += len(content)


class JedParser(BitstreamParser):
    """Decodes the fields of a JEDEC file and verifies fuse count and checksum."""

    def __init__(self, raw_data: bytes, verbose: bool = False) -> None:
        super().__init__(raw_data, verbose)
        self.sections: list[JedSection] = []
        self.fuse_count = 0
        self.pin_count = 0
        self.features_row = 0
        self.feabits = 0
        self.checksum = 0
        self.user_code = 0
        self.security_settings = 0
        self.default_fuse_state = 0
        self._lines: Iterator[str] = iter(())

    def _read_line(self) -> str:
        line = next(self._lines, "")
        if line.endswith("\r"):
            line = line[:-1]
        return line

    def _read_field(self) -> list[str]:
        """Collect consecutive lines until one ends with '*'."""
        lines = []
        while True:
            line = self._read_line()
            if not line:
                break
            done = line.endswith("*")
            if done:
                line = line[:-1]
            lines.append(line)
            if done:
                break
        return lines

    def _parse_e_field(self, content: list[str]) -> None:
        if len(content) < 2:
            raise BitstreamError("E field needs a features row and feabits")
        self.features_row = _digits_lsb_first(content[0][1:]) & ((1 << 64) - 1)
        self.feabits = _digits_lsb_first(content[1]) & 0xFFFF

    def _parse_l_field(self, content: list[str]) -> JedSection:
        section = JedSection(offset=_scan_int(content[0][1:]))
        if len(content) > 1:
            for line in content[1:]:
                if line:
                    section.add_fuses(line)
        else:
            parts = content[0].split()
            if len(parts) < 2:
                raise BitstreamError(f"L field without fuse data: {content[0]!r}")
            section.add_fuses(parts[1].rstrip("*"))
        return section

    def _parse_user_code(self, head: str) -> None:
        if len(head) < 2:
            raise BitstreamError("empty user code field")
        kind = head[1]
        if kind == "H":
            self.user_code = _scan_int(head[2:], 16) & 0xFFFFFFFF
        elif kind == "A":
            self.user_code = _scan_int(head[2:]) & 0xFFFFFFFF
        else:
            code = self.user_code
            for char in head[1:]:
                code = ((code << 1) | (ord(char) - ord("0"))) & 0xFFFFFFFF
            self.user_code = code

    def _parse_fields(self) -> None:
        note = ""
        while True:
            lines = self._read_field()
            if not lines:
                break
            head = lines[0]
            kind = head[:1]
            if kind == "N":
                note = head[head.find(" ") + 1:]
            elif kind == "Q":
                if len(head) < 2:
                    raise BitstreamError(f"Error for 'Q' unknown qualifier {head}")
                count = _scan_int(head[2:])
                if head[1] == "F":
                    self.fuse_count = count
                elif head[1] == "P":
                    self.pin_count = count
                else:
                    raise BitstreamError(f"Error for 'Q' unknown qualifier {head}")
            elif kind in ("G", "F"):
                if len(head) < 2:
                    raise BitstreamError(f"field {kind} has no value")
                value = (ord(head[1]) - ord("0")) & 0xFF
                if kind == "G":
                    self.security_settings = value
                else:
                    self.default_fuse_state = value
            elif kind == "C":
                self.checksum = _scan_int(head[1:], 16) & 0xFFFF
            elif kind == _ETX:
                if self.verbose:
                    print("end", flush=True)
                break
            elif kind == "E":
                self._parse_e_field(lines)
            elif kind == "L":
                section = self._parse_l_field(lines)
                section.note = note
                self.sections.append(section)
            elif kind == "U":
                self._parse_user_code(head)
            else:
                raise BitstreamError(f"unknown field {head!r}")

    def parse(self) -> None:
        """Decode every field, then check fuse count and checksum."""
        text = self.raw_data.decode("latin-1")
        stx = text.find(_STX)
        if stx == -1:
            print_error("Error: STX not found: wrong file")
            raise BitstreamError("Error: STX not found: wrong file")
        pos = stx + 1
        if text.startswith("*", pos):
            newline = text.find("\n", pos)
            pos = len(text) if newline == -1 else newline + 1
        self._lines = iter(text[pos:].split("\n"))
        self.sections = []

        self._parse_fields()

        size = sum(section.length for section in self.sections)
        computed = sum(sum(chunk) for section in self.sections
                       for chunk in section.data) & 0xFFFF
        if self.verbose:
            print(f"theorical checksum {self.checksum:x} -> {computed:x}", flush=True)
        if computed != self.checksum:
            raise BitstreamError("Error: wrong checksum")
        if self.verbose and self.sections:
            print(f"array size {len(self.sections[0].data)}", flush=True)
        if self.fuse_count != size:
            raise BitstreamError("Not all fuses are programmed")

    def display_header(self) -> None:
        """Print the feature bits, counts and fuse areas."""
        feabits = self.feabits
        out = ["feabits :", f"{feabits:04x} <-> {feabits}"]
        boot = _BOOT_MODES.get((feabits >> 11) & 0x07, "Error")
        out.append(f"\tBoot Mode       : {boot}")

        def flag(bit: int, when_set: str, when_clear: str) -> str:
            return when_set if (feabits >> bit) & 0x01 else when_clear

        out.append(f"\tMaster Mode SPI : {flag(11, 'enable', 'disable')}")
        out.append(f"\tI2c port        : {flag(10, 'disable', 'enable')}")
        out.append(f"\tSlave SPI port  : {flag(9, 'disable', 'enable')}")
        out.append(f"\tJTAG port       : {flag(8, 'disable', 'enable')}")
        out.append(f"\tDONE            : {flag(7, 'enable', 'disable')}")
        out.append(f"\tINITN           : {flag(6, 'enable', 'disable')}")
        out.append(f"\tPROGRAMN        : {flag(5, 'disable', 'enable')}")
        out.append(f"\tMy_ASSP         : {flag(4, 'enable', 'disable')}")
        out.append(f"Pin Count  : {self.pin_count}")
        out.append(f"Fuse Count : {self.fuse_count}")
        for index, section in enumerate(self.sections):
            out.append(f"area[{index}] {section.offset} {section.length} {section.note}")
        print("\n".join(out), flush=True)

    @property
    def section_count(self) -> int:
        return len(self.sections)

    def offset_for_section(self, index: int) -> int:
        """Return the fuse offset of a section."""
        return self.sections[index].offset

    def data_for_section(self, index: int) -> list[bytes]:
        """Return the packed fuse lines of a section."""
        return list(self.sections[index].data)

    def note_for_section(self, index: int) -> str:
        """Return the note that preceded a section."""
        return self.sections[index].note