"""FPGA bitstream parsers, a JTAG TAP state machine and USB JTAG cable drivers."""

__version__ = "0.1.0"