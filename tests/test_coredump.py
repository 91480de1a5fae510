import struct

import pytest

from canbus_tools.mcp251xfd.coredump import (
    CoredumpError,
    parse_coredump,
    read_coredump,
)
from canbus_tools.mcp251xfd.regs import (
    DUMP_MAGIC,
    DUMP_UNKNOWN,
    ChipState,
    ObjectType,
    RingKey,
)


def _entries(pairs):
    return b"".join(struct.pack("<2I", a, b) for a, b in pairs)


def _build(objects, magic=DUMP_MAGIC):
    """Lay out headers first, then the payloads, as a device coredump does."""
    offset = 16 * len(objects)
    headers = b""
    payloads = b""
    for object_type, payload in objects:
        headers += struct.pack("<4I", magic, object_type, offset, len(payload))
        payloads += payload
        offset += len(payload)
    return headers + payloads


def test_register_object_is_written():
    dump = _build(
        [
            (ObjectType.REG, _entries([(0x00, 0x04980760), (0xE00, 0x460)])),
            (ObjectType.END, b""),
        ]
    )
    state = ChipState()
    parse_coredump(state, dump)
    assert state.read_u32(0x00) == 0x04980760
    assert state.read_u32(0xE00) == 0x460


def test_ring_object_sets_ring():
    ring_entries = _entries(
        [
            (RingKey.HEAD, 17),
            (RingKey.TAIL, 15),
            (RingKey.BASE, 0x400),
            (RingKey.NR, 0),
            (RingKey.FIFO_NR, 3),
            (RingKey.OBJ_NUM, 8),
            (RingKey.OBJ_SIZE, 20),
        ]
    )
    dump = _build([(ObjectType.RX, ring_entries), (ObjectType.END, b"")])
    state = ChipState()
    parse_coredump(state, dump)
    ring = state.rings[3]
    assert (ring.head, ring.tail, ring.base) == (17, 15, 0x400)
    assert (ring.nr, ring.fifo_nr, ring.obj_num, ring.obj_size) == (0, 3, 8, 20)
    assert ring.type is None
    assert state.rings[2].fifo_nr == 0xFF


def test_ring_values_are_truncated_and_unknown_keys_ignored():
    ring_entries = _entries(
        [(RingKey.FIFO_NR, 0x101), (RingKey.BASE, 0x10400), (99, 5)]
    )
    dump = _build([(ObjectType.TX, ring_entries), (ObjectType.END, b"")])
    state = ChipState()
    parse_coredump(state, dump)
    ring = state.rings[1]
    assert ring.base == 0x400
    assert ring.head == DUMP_UNKNOWN


def test_end_stops_processing():
    dump = _build(
        [
            (ObjectType.END, b""),
            (ObjectType.REG, _entries([(0x10, 0xDEADBEEF)])),
        ]
    )
    state = ChipState()
    parse_coredump(state, dump)
    assert state.read_u32(0x10) == 0


def test_missing_end_marker_raises():
    dump = _build([(ObjectType.REG, _entries([(0x10, 1)]))])
    with pytest.raises(CoredumpError):
        parse_coredump(ChipState(), dump)


def test_bad_magic_raises():
    dump = _build([(ObjectType.END, b"")], magic=0x12345678)
    with pytest.raises(CoredumpError):
        parse_coredump(ChipState(), dump)


def test_empty_dump_raises():
    with pytest.raises(CoredumpError):
        parse_coredump(ChipState(), b"")


def test_object_beyond_dump_raises():
    dump = struct.pack("<4I", DUMP_MAGIC, ObjectType.REG, 16, 64)
    with pytest.raises(CoredumpError):
        parse_coredump(ChipState(), dump)


def test_register_outside_image_raises():
    dump = _build(
        [(ObjectType.REG, _entries([(0x1004, 1)])), (ObjectType.END, b"")]
    )
    with pytest.raises(CoredumpError):
        parse_coredump(ChipState(), dump)


def test_fifo_number_out_of_range_raises():
    dump = _build(
        [
            (ObjectType.TEF, _entries([(RingKey.FIFO_NR, 32)])),
            (ObjectType.END, b""),
        ]
    )
    with pytest.raises(CoredumpError):
        parse_coredump(ChipState(), dump)


def test_unknown_object_type_raises():
    dump = _build([(7, b""), (ObjectType.END, b"")])
    with pytest.raises(CoredumpError):
        parse_coredump(ChipState(), dump)


def test_partial_trailing_entry_is_ignored():
    payload = _entries([(0x20, 9)]) + b"\x01\x02\x03"
    dump = _build([(ObjectType.REG, payload), (ObjectType.END, b"")])
    state = ChipState()
    parse_coredump(state, dump)
    assert state.read_u32(0x20) == 9


def test_read_coredump_from_file(tmp_path):
    path = tmp_path / "device.dump"
    path.write_bytes(
        _build(
            [(ObjectType.REG, _entries([(0x34, 0x2A)])), (ObjectType.END, b"")]
        )
    )
    state = ChipState()
    read_coredump(state, path)
    assert state.read_u32(0x34) == 0x2A


def test_read_coredump_missing_file(tmp_path):
    with pytest.raises(OSError):
        read_coredump(ChipState(), tmp_path / "absent.dump")