"""Reader for MCP251xFD device coredump files."""

from __future__ import annotations

import os
import struct
from pathlib import Path
from typing import Iterator

from canbus_tools.mcp251xfd.regs import (
    DUMP_MAGIC,
    MEM_SIZE,
    ChipState,
    ObjectType,
    Ring,
    RingKey,
)

_HEADER = struct.Struct("<4I")
_ENTRY = struct.Struct("<2I")

_RING_FIELDS = {
    RingKey.HEAD: ("head", 0xFFFFFFFF),
    RingKey.TAIL: ("tail", 0xFFFFFFFF),
    RingKey.BASE: ("base", 0xFFFF),
    RingKey.NR: ("nr", 0xFF),
    RingKey.FIFO_NR: ("fifo_nr", 0xFF),
    RingKey.OBJ_NUM: ("obj_num", 0xFF),
    RingKey.OBJ_SIZE: ("obj_size", 0xFF),
}


class CoredumpError(ValueError):
    """The coredump is malformed or does not fit the chip image."""


def _entries(data: bytes, start: int, end: int) -> Iterator[tuple[int, int]]:
    chunk = data[start:end]
    usable = len(chunk) - len(chunk) % _ENTRY.size
    yield from _ENTRY.iter_unpack(chunk[:usable])


def _read_registers(state: ChipState, data: bytes, start: int, end: int) -> None:
    for reg, value in _entries(data, start, end):
        if reg > MEM_SIZE:
            raise CoredumpError(f"register {reg:#x} outside image")
        try:
            state.write_u32(reg, value)
        except ValueError as exc:
            raise CoredumpError(str(exc)) from exc


def _read_ring(data: bytes, start: int, end: int) -> Ring:
    ring = Ring()
    for key, value in _entries(data, start, end):
        try:
            attr, mask = _RING_FIELDS[RingKey(key)]
        except ValueError:
            continue
        setattr(ring, attr, value & mask)
    return ring


def parse_coredump(state: ChipState, data: bytes) -> None:
    """Load registers and ring descriptions from coredump bytes into ``state``."""
    data = bytes(data)
    dump_len = len(data)
    for hdr_offset in range(0, dump_len - _HEADER.size + 1, _HEADER.size):
        magic, object_type, offset, length = _HEADER.unpack_from(data, hdr_offset)
        if magic != DUMP_MAGIC:
            break
        if offset + length > dump_len:
            raise CoredumpError(
                f"object at {offset:#x} of length {length:#x} exceeds dump"
            )
        end = offset + length

        if object_type == ObjectType.REG:
            _read_registers(state, data, offset, end)
        elif object_type in (ObjectType.TEF, ObjectType.RX, ObjectType.TX):
            ring = _read_ring(data, offset, end)
            if ring.fifo_nr >= len(state.rings):
                raise CoredumpError(f"invalid FIFO number {ring.fifo_nr}")
            state.rings[ring.fifo_nr] = ring
        elif object_type == ObjectType.END:
            return
        else:
            raise CoredumpError(f"unknown object type {object_type:#010x}")

    raise CoredumpError("coredump has no end marker")


def read_coredump(state: ChipState, path: str | os.PathLike[str]) -> None:
    """Read the coredump file at ``path`` into ``state``."""
    parse_coredump(state, Path(path).read_bytes())