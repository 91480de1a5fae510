"""Command line tool decoding the chip and driver state of an MCP251xFD."""

from __future__ import annotations

import os
import sys

from canbus_tools.mcp251xfd.coredump import CoredumpError, read_coredump
from canbus_tools.mcp251xfd.ramdump import dump
from canbus_tools.mcp251xfd.regmap import RegmapError, read_regmap
from canbus_tools.mcp251xfd.regs import ChipState

_PROG = "mcp251xfd-dump"

_USAGE = """{prg} - decode chip and driver state of mcp251xfd.

Usage: {prg} [options] <file>

        <file>      path to dev coredump file
                        ('/var/log/devcoredump-19700101-234200.dump')
                    path to regmap register file
                        ('/sys/kernel/debug/regmap/spi1.0-crc/registers')
                    shortcut to regmap register file
                        ('spi0.0')

Options:
        -h, --help  this help

"""


def _usage() -> None:
    sys.stderr.write(_USAGE.format(prg=_PROG))


def load_state(path: str | os.PathLike[str]) -> ChipState:
    """Load a coredump, or failing that a regmap register file, into a chip image."""
    state = ChipState()
    try:
        read_coredump(state, path)
    except (CoredumpError, OSError):
        read_regmap(state, path)
    return state


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    positional: list[str] = []
    options_done = False
    for arg in args:
        if options_done or arg == "-" or not arg.startswith("-"):
            positional.append(arg)
            continue
        if arg == "--":
            options_done = True
            continue
        if arg.startswith("--"):
            name = arg[2:]
            _usage()
            return 0 if name and "help".startswith(name) else 1
        _usage()
        return 0 if arg[1] == "h" else 1

    if not positional:
        _usage()
        return 1

    path = positional[0]
    try:
        state = load_state(path)
    except (RegmapError, OSError):
        sys.stderr.write(f"Unable to read file: '{path}'\n")
        return 1

    sys.stdout.write(dump(state))
    return 0


if __name__ == "__main__":
    sys.exit(main())