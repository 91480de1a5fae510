import struct

import pytest

from canbus_tools.can import field_prep
from canbus_tools.mcp251xfd import regs as hw
from canbus_tools.mcp251xfd.ramdump import analyze_regs_and_ram, dump, format_ram
from canbus_tools.mcp251xfd.regdump import decode_registers
from canbus_tools.mcp251xfd.regs import ChipState, ObjectType

UNUSED_CON = 0x00600000
RX_CON = field_prep(hw.REG_FIFOCON_FSIZE_MASK, 1)
TX_CON = hw.REG_FIFOCON_TXEN | field_prep(
    hw.REG_FIFOCON_PLSIZE_MASK, hw.REG_FIFOCON_PLSIZE_64
)


def _state(tef_fsize=0, fifos=()):
    state = ChipState()
    for index in range(1, 32):
        state.write_u32(hw.reg_fifocon(index), UNUSED_CON)
    state.write_u32(hw.REG_TEFCON, field_prep(hw.REG_TEFCON_FSIZE_MASK, tef_fsize))
    for index, con, sta, ua in fifos:
        state.write_u32(hw.reg_fifocon(index), con)
        state.write_u32(hw.reg_fifosta(index), sta)
        state.write_u32(hw.reg_fifoua(index), ua)
    return state


def _analyze(state):
    regs, _ = decode_registers(state)
    return regs, analyze_regs_and_ram(state, regs)


def _ram(state):
    return state.read_bytes(hw.RAM_START, hw.RAM_SIZE)


def _object_line(text, prefix, n):
    for line in text.splitlines():
        if line.startswith(f"{prefix} Object: 0x{n:02x} "):
            return line
    raise AssertionError(f"no object line {prefix} {n}")


def test_summary_counts():
    state = _state(fifos=[(1, RX_CON, 0, 0), (2, TX_CON, 0, 0)])
    _, summary = _analyze(state)
    assert summary == "Found 1 RX-FIFO, 1 TX-FIFO\n\n"


def test_summary_plural():
    state = _state(fifos=[(1, RX_CON, 0, 0), (2, RX_CON, 0, 0)])
    _, summary = _analyze(state)
    assert "RX-FIFOs" in summary
    assert "TX-FIFOs" not in summary


def test_ring_layout_is_contiguous():
    state = _state(tef_fsize=3, fifos=[(1, RX_CON, 0, 0), (2, TX_CON, 0, 0)])
    _analyze(state)
    tef, rx, tx = state.rings[0], state.rings[1], state.rings[2]
    assert tef.type == ObjectType.TEF
    assert tef.base == hw.RAM_START
    assert tef.obj_size == hw.HW_TEF_OBJ_SIZE
    assert tef.obj_num == 4
    assert rx.type == ObjectType.RX and rx.nr == 0 and rx.fifo_nr == 1
    assert rx.obj_num == 2
    assert rx.obj_size == hw.HW_RX_OBJ_HEADER_SIZE + 8
    assert rx.base == tef.base + tef.obj_size * tef.obj_num
    assert tx.type == ObjectType.TX and tx.nr == 0 and tx.fifo_nr == 2
    assert tx.obj_size == hw.HW_TX_OBJ_HEADER_SIZE + 64
    assert tx.base == rx.base + rx.obj_size * rx.obj_num


def test_unused_ring_is_left_alone():
    state = _state(fifos=[(1, RX_CON, 0, 0)])
    _analyze(state)
    assert state.rings[5].type is None


def test_head_and_tail_are_preserved():
    state = _state(fifos=[(1, RX_CON, 0, 0)])
    state.rings[1].head = 7
    state.rings[1].tail = 3
    _analyze(state)
    assert (state.rings[1].head, state.rings[1].tail) == (7, 3)


def test_format_ram_overviews():
    state = _state(fifos=[(1, RX_CON, 0, 0), (2, TX_CON, 0, 0)])
    regs, _ = _analyze(state)
    text = format_ram(state, regs, _ram(state))
    assert text.startswith("----------------------- RAM dump ----------------------\n")
    assert text.endswith("------------------------- end -------------------------\n")
    assert "TEF-0 FIFO 0 Overview:" in text
    assert "RX-0 FIFO 1 Overview:" in text
    assert "TX-0 FIFO 2 Overview:" in text
    assert f"{'head ( / )':>16}\n" in text
    assert f"{'head (c/ )':>16} = 0x00\n" in text


def test_rx_object_data():
    state = _state(fifos=[(1, RX_CON, 0, 0)])
    _analyze(state)
    base = state.rings[1].base
    state.write_u32(base, 0x123)
    state.write_u32(base + 4, 8)
    state.mem[base + 12 : base + 20] = bytes(range(8))
    regs, _ = _analyze(state)
    text = format_ram(state, regs, _ram(state))
    assert f"RX-0 Object: 0x00 (0x{base:03x})" in text
    assert f"{'id':>16} = 0x00000123\n" in text
    assert "            data = 00 01 02 03  04 05 06 07\n" in text


def test_empty_payload():
    state = _state(fifos=[(1, RX_CON, 0, 0)])
    regs, _ = _analyze(state)
    text = format_ram(state, regs, _ram(state))
    assert f"{'data':>16} = -none-\n" in text


def test_chip_tail_marker():
    state = _state(fifos=[(1, RX_CON, 0, 0)])
    _analyze(state)
    ring = state.rings[1]
    ua = ring.base - hw.RAM_START + ring.obj_size
    state.write_u32(hw.reg_fifoua(1), ua)
    regs, _ = _analyze(state)
    text = format_ram(state, regs, _ram(state))
    line1 = _object_line(text, "RX-0", 1)
    assert "chip-TAIL" in line1
    assert "chip-FIFO-empty" in line1
    assert "chip-TAIL" not in _object_line(text, "RX-0", 0)


def test_chip_head_marker():
    sta = field_prep(hw.REG_FIFOSTA_FIFOCI_MASK, 1)
    state = _state(fifos=[(1, RX_CON, sta, 0)])
    regs, _ = _analyze(state)
    text = format_ram(state, regs, _ram(state))
    assert "chip-HEAD" in _object_line(text, "RX-0", 1)
    assert "chip-HEAD" not in _object_line(text, "RX-0", 0)


@pytest.mark.parametrize(
    "head, tail, flag",
    [(0, 0, "ring-FIFO-empty"), (2, 0, "ring-FIFO-full")],
)
def test_ring_fifo_flags(head, tail, flag):
    state = _state(fifos=[(1, RX_CON, 0, 0)])
    state.rings[1].head = head
    state.rings[1].tail = tail
    regs, _ = _analyze(state)
    text = format_ram(state, regs, _ram(state))
    line = _object_line(text, "RX-0", 0)
    assert flag in line
    assert "ring-HEAD" in line and "ring-TAIL" in line
    assert f"{'tail (c/r)':>16}" in text


def test_tef_sequence():
    state = _state()
    _analyze(state)
    base = state.rings[0].base
    struct.pack_into("<3I", state.mem, base, 0, 1 << 9, 0)
    regs, _ = _analyze(state)
    text = format_ram(state, regs, _ram(state))
    assert "0x000001\t\tSequence" in text


def test_dump_structure():
    state = _state(fifos=[(1, RX_CON, 0, 0)])
    text = dump(state)
    assert text.startswith("Found 1 RX-FIFO")
    assert text.index("register dump") < text.index("RAM dump")
    assert text.endswith("------------------------- end -------------------------\n")