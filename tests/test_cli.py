import struct

import pytest

from canbus_tools.mcp251xfd import regs as hw
from canbus_tools.mcp251xfd.cli import load_state, main
from canbus_tools.mcp251xfd.regmap import RegmapError
from canbus_tools.mcp251xfd.regs import DUMP_MAGIC, ObjectType, RingKey


def _coredump(tefcon):
    headers = (
        struct.pack("<4I", DUMP_MAGIC, ObjectType.REG, 48, 8)
        + struct.pack("<4I", DUMP_MAGIC, ObjectType.TEF, 56, 16)
        + struct.pack("<4I", DUMP_MAGIC, ObjectType.END, 0, 0)
    )
    reg = struct.pack("<2I", hw.REG_TEFCON, tefcon)
    ring = struct.pack("<4I", RingKey.FIFO_NR, 0, RingKey.HEAD, 5)
    return headers + reg + ring


def test_load_state_from_coredump(tmp_path):
    path = tmp_path / "core.dump"
    path.write_bytes(_coredump(0x01000000))
    state = load_state(path)
    assert state.read_u32(hw.REG_TEFCON) == 0x01000000
    assert state.rings[0].head == 5


def test_load_state_from_regmap(tmp_path):
    path = tmp_path / "registers"
    path.write_text("040: 01000000\n044: 00000003\n")
    state = load_state(path)
    assert state.read_u32(hw.REG_TEFCON) == 0x01000000
    assert state.read_u32(hw.REG_TEFSTA) == 3


def test_load_state_failure(tmp_path):
    path = tmp_path / "empty"
    path.write_bytes(b"")
    with pytest.raises(RegmapError):
        load_state(path)


def test_main_dumps_coredump(tmp_path, capsys):
    path = tmp_path / "core.dump"
    path.write_bytes(_coredump(0x01000000))
    assert main([str(path)]) == 0
    out = capsys.readouterr().out
    assert "register dump" in out
    assert "TEF-0 FIFO 0 Overview:" in out
    assert f"{'head ( /r)':>16}" in out


def test_main_dumps_regmap(tmp_path, capsys):
    path = tmp_path / "registers"
    path.write_text("040: 01000000\n")
    assert main([str(path)]) == 0
    out = capsys.readouterr().out
    assert out.startswith(f"regmap: Found 1 registers in {path}\n")
    assert "RAM dump" in out


def test_main_without_file(capsys):
    assert main([]) == 1
    assert "Usage: mcp251xfd-dump [options] <file>" in capsys.readouterr().err


@pytest.mark.parametrize("flag", ["-h", "--help"])
def test_main_help(flag, capsys):
    assert main([flag]) == 0
    assert "decode chip and driver state of mcp251xfd" in capsys.readouterr().err


def test_main_unknown_option(tmp_path, capsys):
    assert main(["-v", str(tmp_path)]) == 1
    assert "Usage:" in capsys.readouterr().err


def test_main_unreadable_file(tmp_path, capsys):
    missing = tmp_path / "missing"
    assert main([str(missing)]) == 1
    assert capsys.readouterr().err == f"Unable to read file: '{missing}'\n"