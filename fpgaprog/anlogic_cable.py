"""Driver for the Anlogic USB JTAG cable."""

from __future__ import annotations

from typing import Optional

from .display import print_warn
from .jtag import BulkTransport, CableError, JtagInterface

VENDOR_ID = 0x0547
PRODUCT_ID = 0x1002

CONF_EP = 0x08
WRITE_EP = 0x06
READ_EP = 0x82

FREQ_CMD = 0x01

TCK_PIN = 1 << 2
TDI_PIN = 1 << 1
TMS_PIN = 1 << 0

_PACKET = 512
_TIMEOUT_MS = 1000

# (minimum frequency, divider code, real frequency), highest first.
_FREQ_TABLE = (
    (6_000_000, 0x00, 6_000_000),
    (3_000_000, 0x04, 3_000_000),
    (1_000_000, 0x14, 1_000_000),
    (600_000, 0x24, 600_000),
    (400_000, 0x38, 400_000),
    (200_000, 0x70, 200_000),
    (100_000, 0xE8, 100_000),
    (90_000, 0xFF, 90_000),
)


def _bit(data: bytes, index: int) -> bool:
    return bool(data[index >> 3] & (1 << (index & 0x07)))


class AnlogicCable(JtagInterface):
    """Each USB packet holds 512 pin states; every write is answered by a read."""

    def __init__(self, transport: BulkTransport, clk_hz: int,
                 verbose: bool = False) -> None:
        self.transport = transport
        self.verbose = verbose
        self.set_clk_freq(clk_hz)

    def set_clk_freq(self, clk_hz: int) -> int:
        """Select the nearest supported frequency not above clk_hz."""
        requested = clk_hz
        if clk_hz > 6_000_000:
            print_warn("Anlogic JTAG probe limited to 6MHz")
            clk_hz = 6_000_000

        code = 0
        for minimum, divider, real in _FREQ_TABLE:
            if clk_hz >= minimum:
                code, clk_hz = divider, real
                break

        self.transport.bulk_write(CONF_EP, bytes([FREQ_CMD, code]), _TIMEOUT_MS)
        print_warn(f"Jtag frequency : requested {requested}Hz -> real {clk_hz}Hz")
        return clk_hz

    def _write(self, packet: bytes, rd_len: int) -> bytes:
        """Send one packet, read the answer and extract rd_len TDO bits."""
        self.transport.bulk_write(WRITE_EP, packet, _TIMEOUT_MS)
        response = self.transport.bulk_read(READ_EP, len(packet), _TIMEOUT_MS)
        if len(response) < rd_len:
            raise CableError(
                f"short read: {len(response)} bytes instead of {rd_len}")
        out = bytearray((rd_len + 7) // 8)
        for i in range(rd_len):
            out[i >> 3] >>= 1
            if (response[i] >> 4) & 0x01:
                out[i >> 3] |= 0x80
        return bytes(out)

    @staticmethod
    def _pad(states: bytearray) -> bytes:
        if len(states) < _PACKET:
            states.extend([states[-1] | TCK_PIN] * (_PACKET - len(states)))
        return bytes(states)

    def write_tms(self, tms: bytes, length: int, flush_buffer: bool = False) -> int:
        """Clock length TMS bits, LSB first."""
        if length == 0:
            return 0
        mask = TCK_PIN << 4
        for start in range(0, length, _PACKET):
            count = min(_PACKET, length - start)
            states = bytearray(
                mask | (TMS_PIN | (TMS_PIN << 4) if _bit(tms, start + i) else 0)
                for i in range(count))
            self._write(self._pad(states), 0)
        return length

    def toggle_clk(self, tms: int, tdi: int, clk_len: int) -> None:
        """Generate clk_len clocks with TMS and TDI held."""
        mask = (TMS_PIN if tms else 0) | (TDI_PIN if tdi else 0)
        mask |= ((mask & 0x0F) << 4) | (TCK_PIN << 4)
        last = mask | TCK_PIN
        remaining = clk_len
        while remaining > 0:
            count = min(_PACKET, remaining)
            packet = bytes([mask] * count + [last] * (_PACKET - count))
            self._write(packet, 0)
            remaining -= count

    def flush(self) -> None:
        """Nothing is buffered on this cable."""

    def write_tdi(self, tx: Optional[bytes], length: int, end: bool,
                  read: bool = False) -> Optional[bytes]:
        """Shift length TDI bits, raising TMS with the last one when end."""
        mask = TCK_PIN << 4
        received = []
        for start in range(0, length, _PACKET):
            count = min(_PACKET, length - start)
            if tx is None:
                states = bytearray([mask] * count)
            else:
                states = bytearray(
                    mask | (TDI_PIN | (TDI_PIN << 4) if _bit(tx, start + i) else 0)
                    for i in range(count))
            if end and start + count == length:
                states[-1] |= (TMS_PIN << 4) | TMS_PIN
            received.append(self._write(self._pad(states), count if read else 0))
        if not read:
            return None
        return b"".join(received)