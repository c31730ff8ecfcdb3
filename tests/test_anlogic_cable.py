import pytest

from fpgaprog.anlogic_cable import (
    CONF_EP, READ_EP, TCK_PIN, TDI_PIN, TMS_PIN, WRITE_EP, AnlogicCable)
from fpgaprog.jtag import BulkTransport, CableError


class LoopbackTransport(BulkTransport):
    """Answers every packet with TDO equal to the TDI that was driven."""

    def __init__(self):
        self.writes = []
        self.reads = []

    def bulk_write(self, endpoint, data, timeout):
        self.writes.append((endpoint, bytes(data)))
        return len(data)

    def bulk_read(self, endpoint, size, timeout):
        self.reads.append((endpoint, size))
        last = self.writes[-1][1]
        return bytes(0x10 if b & TDI_PIN else 0 for b in last[:size])

    def data_packets(self):
        return [data for ep, data in self.writes if ep == WRITE_EP]


class FailingTransport(LoopbackTransport):
    def bulk_write(self, endpoint, data, timeout):
        raise CableError("usb bulk write failed")


@pytest.fixture
def cable():
    return AnlogicCable(LoopbackTransport(), 6_000_000)


def test_constructor_configures_6mhz(cable):
    assert cable.transport.writes[0] == (CONF_EP, bytes([0x01, 0x00]))


def test_frequency_selection():
    cable = AnlogicCable(LoopbackTransport(), 6_000_000)
    assert cable.set_clk_freq(1_500_000) == 1_000_000
    assert cable.transport.writes[-1] == (CONF_EP, bytes([0x01, 0x14]))
    assert cable.set_clk_freq(20_000_000) == 6_000_000
    assert cable.set_clk_freq(90_000) == 90_000
    assert cable.transport.writes[-1] == (CONF_EP, bytes([0x01, 0xFF]))


def test_frequency_message(capsys):
    AnlogicCable(LoopbackTransport(), 3_500_000)
    out = capsys.readouterr().out
    assert "requested 3500000Hz -> real 3000000Hz" in out


def test_constructor_propagates_transport_error():
    with pytest.raises(CableError):
        AnlogicCable(FailingTransport(), 1_000_000)


def test_write_tdi_loopback_round_trip(cable):
    tx = bytes([0xA5, 0x3C])
    assert cable.write_tdi(tx, 16, False, True) == tx


def test_write_tdi_loopback_multiple_packets(cable):
    tx = bytes((i * 37) & 0xFF for i in range(125))
    cable.transport.writes.clear()
    assert cable.write_tdi(tx, 1000, False, True) == tx
    packets = cable.transport.data_packets()
    assert len(packets) == 2
    assert all(len(p) == 512 for p in packets)


def test_write_tdi_each_write_followed_by_read(cable):
    cable.transport.reads.clear()
    cable.write_tdi(b"\x01", 8, False, False)
    assert cable.transport.reads == [(READ_EP, 512)]


def test_write_tdi_without_read_returns_none(cable):
    assert cable.write_tdi(b"\xff", 8, False, False) is None


def test_write_tdi_end_raises_tms_on_last_bit(cable):
    cable.write_tdi(b"\x00", 8, True, False)
    packet = cable.transport.data_packets()[-1]
    assert not packet[6] & TMS_PIN
    assert packet[7] & TMS_PIN
    assert all(b == packet[7] | TCK_PIN for b in packet[8:])


def test_write_tdi_without_data_drives_tdi_low(cable):
    result = cable.write_tdi(None, 10, False, True)
    assert len(result) >= 1
    assert set(result) == {0}
    packet = cable.transport.data_packets()[-1]
    assert all(not b & TDI_PIN for b in packet[:10])


def test_write_tms_bits_round_trip(cable):
    tms = bytes([0b10110010, 0b01])
    assert cable.write_tms(tms, 10, False) == 10
    packet = cable.transport.data_packets()[-1]
    sent = [b & TMS_PIN for b in packet[:10]]
    expected = [(tms[i >> 3] >> (i & 7)) & 1 for i in range(10)]
    assert sent == expected
    assert all(b & TCK_PIN for b in packet[10:])


def test_write_tms_long_sequence_uses_two_packets(cable):
    cable.transport.writes.clear()
    tms = bytes([0xFF] * 75)
    assert cable.write_tms(tms, 600, True) == 600
    packets = cable.transport.data_packets()
    assert len(packets) == 2
    assert all(b & TMS_PIN for b in packets[1][:88])


def test_write_tms_zero_length_sends_nothing(cable):
    cable.transport.writes.clear()
    assert cable.write_tms(b"", 0, True) == 0
    assert cable.transport.writes == []


def test_toggle_clk_packet_layout(cable):
    cable.transport.writes.clear()
    cable.toggle_clk(1, 0, 3)
    (packet,) = cable.transport.data_packets()
    assert len(packet) == 512
    assert packet[0] == packet[1] == packet[2]
    assert packet[0] & TMS_PIN
    assert not packet[0] & TCK_PIN
    assert all(b == packet[0] | TCK_PIN for b in packet[3:])


def test_toggle_clk_packet_count(cable):
    cable.transport.writes.clear()
    cable.toggle_clk(0, 1, 1100)
    packets = cable.transport.data_packets()
    assert len(packets) == 3
    assert all(b & TDI_PIN for p in packets for b in p)


def test_toggle_clk_zero_sends_nothing(cable):
    cable.transport.writes.clear()
    cable.toggle_clk(0, 0, 0)
    assert cable.transport.writes == []


def test_short_read_raises(cable):
    class Short(LoopbackTransport):
        def bulk_read(self, endpoint, size, timeout):
            return b"\x00" * 4

    cable.transport = Short()
    with pytest.raises(CableError):
        cable.write_tdi(b"\x00", 8, False, True)