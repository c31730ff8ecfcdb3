[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fpgaprog"
version = "0.1.0"
description = "FPGA bitstream parsers, a JTAG TAP state machine and USB JTAG cable drivers"
requires-python = ">=3.10"
dependencies = []
keywords = ["fpga", "jtag", "bitstream", "gowin", "anlogic", "efinix", "jedec", "dfu"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Embedded Systems",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["fpgaprog"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
