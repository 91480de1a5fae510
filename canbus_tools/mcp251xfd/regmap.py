"""Reader for MCP251xFD register files exported through the regmap debug interface."""

from __future__ import annotations

import os
import re
from typing import Iterable

from canbus_tools.mcp251xfd.regs import MEM_SIZE, ChipState

_REGMAP_ROOT = "/sys/kernel/debug/regmap"

_LINE = re.compile(
    r"\s*([+-]?(?:0[xX])?[0-9a-fA-F]+):\s*([+-]?(?:0[xX])?[0-9a-fA-F]+)"
)


class RegmapError(ValueError):
    """The register file is missing, empty or does not fit the chip image."""


def _hex(text: str) -> int:
    negative = text.startswith("-")
    digits = text.lstrip("+-")
    if digits[:2].lower() == "0x":
        digits = digits[2:]
    value = int(digits, 16)
    return -value if negative else value


def _load(state: ChipState, lines: Iterable[str]) -> int:
    if isinstance(lines, str):
        lines = lines.splitlines()
    count = 0
    for line in lines:
        match = _LINE.match(line)
        if match is None:
            continue
        reg = _hex(match.group(1)) & 0xFFFF
        value = _hex(match.group(2)) & 0xFFFFFFFF
        if reg + 4 > MEM_SIZE:
            raise RegmapError(f"register {reg:#x} outside image")
        state.write_u32(reg, value)
        count += 1
    return count


def parse_regmap(state: ChipState, lines: Iterable[str]) -> int:
    """Load ``reg: value`` lines into ``state``; return the number of registers."""
    count = _load(state, lines)
    if not count:
        raise RegmapError("no registers found")
    return count


def _read_file(state: ChipState, path: str) -> int:
    with open(path, encoding="ascii", errors="replace") as handle:
        count = _load(state, handle)
    print(f"regmap: Found {count} registers in {path}")
    if not count:
        raise RegmapError(f"no registers found in {path}")
    return count


def read_regmap(state: ChipState, path: str | os.PathLike[str]) -> int:
    """Read a regmap register file, or a device shortcut such as ``spi0.0``."""
    path = os.fspath(path)
    try:
        return _read_file(state, path)
    except (OSError, RegmapError) as exc:
        failure: Exception = exc

    if "/" in path:
        raise RegmapError(f"cannot read register file {path!r}") from failure

    for candidate in (
        f"{_REGMAP_ROOT}/{path}/registers",
        f"{_REGMAP_ROOT}/{path}-crc/registers",
    ):
        try:
            return _read_file(state, candidate)
        except (OSError, RegmapError) as exc:
            failure = exc

    raise RegmapError(f"cannot read registers of {path!r}") from failure