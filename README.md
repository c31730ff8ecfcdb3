# fpgaprog

Building blocks for loading configuration into FPGAs over JTAG. The package is
written in plain Python and has no third-party dependencies.

## What is in it

### Bitstream parsers

Each parser takes the raw bytes of a file. You call `parse()`, and then read
`data` (the configuration bytes), `bit_length` (the data length in bits) and
`header` (a dict of header fields).

| Module | Class | Format |
| --- | --- | --- |
| `fpgaprog.xilinx_bit` | `XilinxBitParser` | Xilinx `.bit`. It reads the design, part, date and time fields. |
| `fpgaprog.anlogic_bit` | `AnlogicBitParser` | Anlogic `.bit`. It reads the `#` text header and the length-prefixed blocks. |
| `fpgaprog.efinix_hex` | `EfinixHexParser` | Efinix `.hex`, with one hexadecimal byte per line. |
| `fpgaprog.dfu_file` | `DfuFileParser` | DFU images. It decodes the suffix (`vendor_id`, `product_id`, ...) and checks its CRC. |
| `fpgaprog.fs_parser` | `FsParser` | Gowin `.fs`. It packs the ASCII bits into bytes and computes `checksum`. |
| `fpgaprog.jed` | `JedParser` | JEDEC `.jed` fuse maps. It fills `sections` (`JedSection` objects) and checks the checksum and the fuse count. |

All parsers derive from `fpgaprog.bitstream.BitstreamParser`.

- `header_value(key)` returns one header entry.
- `display_header()` prints all header entries.
- The classmethod `from_file(filename, ...)` reads the file for you. With an empty filename it reads standard input, but only when that input is a pipe.
- `fpgaprog.bitstream.reverse_byte` mirrors the bit order of a byte.

```python
from fpgaprog.fs_parser import FsParser

parser = FsParser.from_file("design.fs", reverse_byte=True, verbose=False)
parser.parse()
print(parser.header_value("idcode"), hex(parser.checksum))
```

### JTAG

`fpgaprog.jtag.Jtag` tracks the TAP controller state (`TapState`) and drives
it through a `JtagInterface` cable driver. It provides these methods:

- `set_state`
- `go_test_logic_reset`
- `shift_ir` and `shift_dr`: they accept bytes or an int, and return the captured TDO bits when `read=True`.
- `read_write`
- `toggle_clk`
- `detect_chain`: returns the IDCODEs found on the chain.

Two USB cable drivers are included:

- `fpgaprog.anlogic_cable.AnlogicCable`
- `fpgaprog.dirty_jtag.DirtyJtag`: it detects protocol versions 1 to 3.

Both take a `BulkTransport`, which is any object with
`bulk_write(endpoint, data, timeout)` and `bulk_read(endpoint, size, timeout)`
methods.

```python
from fpgaprog.jtag import Jtag
from fpgaprog.dirty_jtag import DirtyJtag

cable = DirtyJtag(my_transport, clk_hz=6_000_000, verbose=False)
jtag = Jtag(cable, verbose=False)
print([hex(i) for i in jtag.detect_chain(max_dev=5)])
```

### Console output

`fpgaprog.display` has four functions: `print_error`, `print_warn`,
`print_info` and `print_success`. They write status messages, and colour them
when the output stream is a terminal.

## Errors

- Parsing failures raise `fpgaprog.bitstream.BitstreamError`.
- A missing header key raises `KeyError`.
- JTAG failures raise `fpgaprog.jtag.JtagError`.
- Cable failures raise `fpgaprog.jtag.CableError`.

## What it does not do

- **No USB backend.** You supply the `BulkTransport` that talks to the device.
- **No device programming.** There are no per-FPGA programming sequences: nothing erases, loads SRAM or writes flash for a particular device family. The parsers and the JTAG layer are the parts you would build such sequences from.
- **No command-line program.** Everything is used as a library.

## Running the tests

```
pip install -e .[test]
pytest
```