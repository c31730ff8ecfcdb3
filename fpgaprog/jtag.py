"""JTAG TAP state machine on top of a cable driver."""

from __future__ import annotations

import abc
import enum
from typing import List, Optional, Tuple, Union

BitsArg = Union[bytes, bytearray, int, None]


class JtagError(Exception):
    """Raised when a JTAG operation cannot be carried out."""


class CableError(JtagError):
    """Raised by a cable driver or its transport when a transfer fails."""


class TapState(enum.IntEnum):
    """States of the IEEE 1149.1 TAP controller."""

    TEST_LOGIC_RESET = 0
    RUN_TEST_IDLE = 1
    SELECT_DR_SCAN = 2
    CAPTURE_DR = 3
    SHIFT_DR = 4
    EXIT1_DR = 5
    PAUSE_DR = 6
    EXIT2_DR = 7
    UPDATE_DR = 8
    SELECT_IR_SCAN = 9
    CAPTURE_IR = 10
    SHIFT_IR = 11
    EXIT1_IR = 12
    PAUSE_IR = 13
    EXIT2_IR = 14
    UPDATE_IR = 15


_DR_COLUMN = frozenset({
    TapState.CAPTURE_DR, TapState.SHIFT_DR, TapState.EXIT1_DR,
    TapState.PAUSE_DR, TapState.EXIT2_DR, TapState.UPDATE_DR,
})
_IR_COLUMN = frozenset({
    TapState.CAPTURE_IR, TapState.SHIFT_IR, TapState.EXIT1_IR,
    TapState.PAUSE_IR, TapState.EXIT2_IR, TapState.UPDATE_IR,
})


def _column_step(current: TapState, target: TapState,
                 dr: bool) -> Tuple[int, TapState]:
    """Transition inside the DR or IR column of the TAP diagram."""
    s = TapState
    capture, shift, exit1, pause, exit2, update = (
        (s.CAPTURE_DR, s.SHIFT_DR, s.EXIT1_DR, s.PAUSE_DR, s.EXIT2_DR, s.UPDATE_DR)
        if dr else
        (s.CAPTURE_IR, s.SHIFT_IR, s.EXIT1_IR, s.PAUSE_IR, s.EXIT2_IR, s.UPDATE_IR))
    if current == capture:
        return (0, shift) if target == shift else (1, exit1)
    if current == shift:
        return (0, shift) if target == shift else (1, exit1)
    if current == exit1:
        if target in (pause, exit2, shift, exit1):
            return 0, pause
        return 1, update
    if current == pause:
        return (0, pause) if target == pause else (1, exit2)
    if current == exit2:
        if target in (shift, exit1, pause):
            return 0, shift
        return 1, update
    # update
    if target == s.RUN_TEST_IDLE:
        return 0, s.RUN_TEST_IDLE
    return 1, s.SELECT_DR_SCAN


def _step(current: TapState, target: TapState) -> Tuple[int, TapState]:
    """Return the TMS value and the state reached one clock towards target."""
    s = TapState
    if current == s.TEST_LOGIC_RESET:
        if target == s.TEST_LOGIC_RESET:
            return 1, current
        return 0, s.RUN_TEST_IDLE
    if current == s.RUN_TEST_IDLE:
        if target == s.RUN_TEST_IDLE:
            return 0, current
        return 1, s.SELECT_DR_SCAN
    if current == s.SELECT_DR_SCAN:
        if target in _DR_COLUMN:
            return 0, s.CAPTURE_DR
        return 1, s.SELECT_IR_SCAN
    if current == s.SELECT_IR_SCAN:
        if target in _IR_COLUMN:
            return 0, s.CAPTURE_IR
        return 1, s.TEST_LOGIC_RESET
    return _column_step(current, target, current in _DR_COLUMN)


class BulkTransport(abc.ABC):
    """USB bulk endpoint access used by USB cable drivers."""

    @abc.abstractmethod
    def bulk_write(self, endpoint: int, data: bytes, timeout: int) -> int:
        """Send data to an OUT endpoint; return the number of bytes written."""

    @abc.abstractmethod
    def bulk_read(self, endpoint: int, size: int, timeout: int) -> bytes:
        """Read up to size bytes from an IN endpoint."""


class JtagInterface(abc.ABC):
    """Low level cable driver: drives TMS, TDI and TCK."""

    @abc.abstractmethod
    def set_clk_freq(self, clk_hz: int) -> int:
        """Configure TCK; return the real frequency."""

    @abc.abstractmethod
    def write_tms(self, tms: bytes, length: int, flush_buffer: bool) -> int:
        """Clock length TMS bits (LSB first) with TDI held; return bits sent."""

    @abc.abstractmethod
    def write_tdi(self, tx: Optional[bytes], length: int, end: bool,
                  read: bool) -> Optional[bytes]:
        """Shift length bits of tx; raise TMS on the last bit when end.

        Return the captured TDO bits when read is true, otherwise None.
        """

    @abc.abstractmethod
    def toggle_clk(self, tms: int, tdi: int, clk_len: int) -> None:
        """Generate clk_len clock cycles with fixed TMS and TDI."""

    @abc.abstractmethod
    def flush(self) -> None:
        """Send any buffered data."""


def _to_bytes(value: BitsArg, nbits: int) -> Optional[bytes]:
    if value is None:
        return None
    if isinstance(value, int):
        nbytes = (nbits + 7) // 8
        return (value & ((1 << (8 * nbytes)) - 1)).to_bytes(nbytes, "little")
    return bytes(value)


class Jtag:
    """Tracks the TAP state and issues shifts through a cable driver."""

    TMS_BUFFER_SIZE = 128

    def __init__(self, interface: JtagInterface, verbose: bool = False) -> None:
        self.interface = interface
        self.verbose = verbose
        self.state = TapState.RUN_TEST_IDLE
        self._tms_buffer = bytearray(self.TMS_BUFFER_SIZE)
        self._num_tms = 0

    def set_clk_freq(self, clk_hz: int) -> int:
        """Change the cable clock; return the real frequency."""
        return self.interface.set_clk_freq(clk_hz)

    def detect_chain(self, max_dev: int) -> List[int]:
        """Read up to max_dev IDCODEs from the chain."""
        devices = []
        tx = b"\xff" * 4
        self.go_test_logic_reset()
        self.set_state(TapState.SHIFT_DR)
        for i in range(max_dev):
            rx = self.read_write(tx, 32, i == max_dev - 1, read=True) or b""
            idcode = int.from_bytes(rx[:4].ljust(4, b"\x00"), "little")
            if idcode not in (0, 0xFFFFFFFF):
                devices.append(idcode)
        self.go_test_logic_reset()
        self.flush_tms(True)
        return devices

    def set_tms(self, tms: int) -> None:
        """Queue one TMS bit."""
        if self._num_tms + 1 == self.TMS_BUFFER_SIZE * 8:
            self.flush_tms(False)
        if tms:
            self._tms_buffer[self._num_tms >> 3] |= 1 << (self._num_tms & 0x07)
        self._num_tms += 1

    def flush_tms(self, flush_buffer: bool = False) -> int:
        """Send the queued TMS bits to the cable."""
        ret = 0
        if self._num_tms:
            nbytes = (self._num_tms + 7) // 8
            ret = self.interface.write_tms(
                bytes(self._tms_buffer[:nbytes]), self._num_tms, flush_buffer)
            self._tms_buffer = bytearray(self.TMS_BUFFER_SIZE)
            self._num_tms = 0
        elif flush_buffer:
            self.interface.flush()
        return ret

    def flush(self) -> None:
        """Send queued TMS bits and flush the cable."""
        self.flush_tms()
        self.interface.flush()

    def go_test_logic_reset(self) -> None:
        """Reach TEST_LOGIC_RESET from any state."""
        for _ in range(6):
            self.set_tms(1)
        self.flush_tms(False)
        self.state = TapState.TEST_LOGIC_RESET

    def read_write(self, tdi: BitsArg, length: int, last: bool = False,
                   read: bool = False) -> Optional[bytes]:
        """Shift length bits in the current shift state."""
        self.flush_tms(False)
        rx = self.interface.write_tdi(_to_bytes(tdi, length), length,
                                      bool(last), read)
        if last:
            self.state = (TapState.EXIT1_DR if self.state == TapState.SHIFT_DR
                          else TapState.EXIT1_IR)
        return rx

    def toggle_clk(self, nb: int) -> None:
        """Generate nb clocks, keeping the TAP in its current state."""
        tms = 1 if self.state == TapState.TEST_LOGIC_RESET else 0
        self.flush_tms(False)
        self.interface.toggle_clk(tms, 0, nb)

    def shift_dr(self, tdi: BitsArg, drlen: int,
                 end_state: TapState = TapState.RUN_TEST_IDLE,
                 read: bool = False) -> Optional[bytes]:
        """Shift a data register and move to end_state."""
        self.set_state(TapState.SHIFT_DR)
        self.flush_tms(False)
        rx = self.read_write(tdi, drlen, True, read)
        self.set_state(end_state)
        return rx

    def shift_ir(self, tdi: BitsArg, irlen: int,
                 end_state: TapState = TapState.RUN_TEST_IDLE,
                 read: bool = False) -> Optional[bytes]:
        """Shift the instruction register and move to end_state."""
        self.set_state(TapState.SHIFT_IR)
        self.flush_tms(False)
        rx = self.read_write(tdi, irlen, True, read)
        self.set_state(end_state)
        return rx

    def set_state(self, new_state: Union[TapState, int]) -> None:
        """Walk the TAP to new_state, queueing the needed TMS bits."""
        target = TapState(new_state)
        while self.state != target:
            tms, following = _step(self.state, target)
            if self.verbose:
                print(f"_state : {self.state.name:>16}({int(self.state):02d}) -> "
                      f"{target.name}({int(target):02d}) {tms}")
            self.state = following
            self.set_tms(tms)
        self.flush_tms(False)