"""Driver for the DirtyJTAG USB probe."""

from __future__ import annotations

from typing import NamedTuple, Optional

from .display import print_error, print_info, print_warn
from .jtag import BulkTransport, CableError, JtagInterface

VENDOR_ID = 0x1209
PRODUCT_ID = 0xC0CA

INTERFACE = 0
WRITE_EP = 0x01
READ_EP = 0x82

CMD_STOP = 0x00
CMD_INFO = 0x01
CMD_FREQ = 0x02
CMD_XFER = 0x03
CMD_SETSIG = 0x04
CMD_GETSIG = 0x05
CMD_CLK = 0x06

# Command modifiers understood from protocol version 2 on.
EXTEND_LENGTH = 0x40
NO_READ = 0x80

SIG_TCK = 1 << 1
SIG_TDI = 1 << 2
SIG_TDO = 1 << 3
SIG_TMS = 1 << 4

MAX_FREQ = 16_000_000
_TIMEOUT_MS = 1000
_MAX_CLK_PER_CMD = 64


class _VersionOptions(NamedTuple):
    no_read: int
    max_bits: int


_VERSION_OPTIONS = (
    _VersionOptions(0, 240),
    _VersionOptions(0, 240),
    _VersionOptions(NO_READ, 496),
    _VersionOptions(NO_READ, 4000),
)

_VERSION_BANNERS = {
    b"DJTAG1\n": 1,
    b"DJTAG2\n": 2,
    b"DJTAG3\n": 3,
}


def _bit(data: bytes, index: int) -> bool:
    return bool(data[index >> 3] & (1 << (index & 0x07)))


class DirtyJtag(JtagInterface):
    """Shifts TDI in XFER packets and drives TMS by bit-banging the pins."""

    def __init__(self, transport: BulkTransport, clk_hz: int,
                 verbose: bool = False) -> None:
        self.transport = transport
        self.verbose = verbose
        self.version = 0
        self._detect_version()
        self.set_clk_freq(clk_hz)

    def _write(self, packet: bytes) -> int:
        return self.transport.bulk_write(WRITE_EP, bytes(packet), _TIMEOUT_MS)

    def _read_nonempty(self, size: int) -> bytes:
        while True:
            data = self.transport.bulk_read(READ_EP, size, _TIMEOUT_MS)
            if data:
                return bytes(data)

    def _detect_version(self) -> None:
        try:
            self._write(bytes([CMD_INFO, CMD_STOP]))
            banner = self._read_nonempty(64)
        except CableError as exc:
            print_error(f"getVersion: usb bulk transfer failed {exc}")
            self.version = 0
            return
        for prefix, version in _VERSION_BANNERS.items():
            if banner.startswith(prefix):
                self.version = version
                return
        print_error("dirtyJtag version unknown")
        self.version = 0

    def set_clk_freq(self, clk_hz: int) -> int:
        """Program TCK in kHz steps, capped at 16 MHz; return the frequency used."""
        requested = clk_hz
        if clk_hz > MAX_FREQ:
            print_warn("DirtyJTAG probe limited to 16000kHz")
            clk_hz = MAX_FREQ
        print_info(f"Jtag frequency : requested {requested}Hz -> real {clk_hz}Hz")
        khz = clk_hz // 1000
        self._write(bytes([CMD_FREQ, (khz >> 8) & 0xFF, khz & 0xFF, CMD_STOP]))
        return clk_hz

    def _bit_bang(self, mask: int, value: int, read: bool,
                  last: bool) -> Optional[int]:
        """Set the pins for one clock; optionally sample them back."""
        mask |= SIG_TCK
        self._write(bytes([CMD_SETSIG, mask, value,
                           CMD_SETSIG, mask, value | SIG_TCK, CMD_STOP]))
        signals = None
        if read:
            self._write(bytes([CMD_GETSIG, CMD_STOP]))
            signals = self._read_nonempty(1)[0]
        if last:
            self._write(bytes([CMD_SETSIG, mask, value & ~SIG_TCK & 0xFF,
                               CMD_STOP]))
        return signals

    def write_tms(self, tms: bytes, length: int, flush_buffer: bool = False) -> int:
        """Clock length TMS bits, LSB first, one bit-bang per bit."""
        for i in range(length):
            self._bit_bang(SIG_TMS, SIG_TMS if _bit(tms, i) else 0,
                           read=False, last=(i == length - 1))
        return length

    def toggle_clk(self, tms: int, tdi: int, clk_len: int) -> None:
        """Generate clk_len clocks, at most 64 per command."""
        signals = (SIG_TMS if tms else 0) | (SIG_TDI if tdi else 0)
        remaining = clk_len
        while remaining > 0:
            count = min(remaining, _MAX_CLK_PER_CMD)
            self._write(bytes([CMD_CLK, signals, count, CMD_STOP]))
            remaining -= count

    def flush(self) -> None:
        """Nothing is buffered on this probe."""

    def _header(self, command: int, bits: int) -> bytes:
        if self.version == 3:
            return bytes([command, (bits >> 8) & 0xFF, bits & 0xFF])
        if bits > 255:
            return bytes([command | EXTEND_LENGTH, bits - 256])
        return bytes([command & ~EXTEND_LENGTH & 0xFF, bits])

    def write_tdi(self, tx: Optional[bytes], length: int, end: bool,
                  read: bool = False) -> Optional[bytes]:
        """Shift length bits; when end, the last bit goes out with TMS high."""
        if length <= 0:
            return b"" if read else None
        real_bits = length - (1 if end else 0)
        nbytes = (length + 7) // 8
        tx_copy = bytes(tx[:nbytes]).ljust(nbytes, b"\x00") if tx else bytes(nbytes)
        rx = bytearray(nbytes)

        options = _VERSION_OPTIONS[self.version]
        command = CMD_XFER | (0 if read else options.no_read)
        byte_pos = 0
        while real_bits:
            bits = min(real_bits, options.max_bits)
            byte_count = (bits + 7) // 8
            payload = bytearray(byte_count)
            chunk = tx_copy[byte_pos:]
            for i in range(bits):
                if _bit(chunk, i):
                    payload[i >> 3] |= 0x80 >> (i & 0x07)
            packet = self._header(command, bits) + bytes(payload)
            written = self._write(packet)
            if written != len(packet):
                raise CableError(
                    f"writeTDI: usb bulk write sent {written} of {len(packet)} bytes")

            if read or self.version <= 1:
                size = byte_count if bits > 255 else 32
                answer = self._read_nonempty(size)
                if len(answer) < byte_count:
                    raise CableError(
                        f"writeTDI: read {len(answer)} bytes, {byte_count} expected")
                if read:
                    for i in range(bits):
                        index = byte_pos + (i >> 3)
                        rx[index] = (rx[index] >> 1) | (
                            (answer[i >> 3] << (i & 0x07)) & 0x80)

            real_bits -= bits
            byte_pos += byte_count

        if end:
            pos = length - 1
            last_bit = SIG_TDI if _bit(tx_copy, pos) else 0
            signals = self._bit_bang(SIG_TMS | SIG_TDI, SIG_TMS | last_bit,
                                     read=read, last=True)
            if read:
                rx[pos >> 3] >>= 1
                if signals is not None and signals & SIG_TDO:
                    rx[pos >> 3] |= 1 << (pos & 0x07)

        return bytes(rx) if read else None