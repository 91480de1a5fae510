import pytest

from canbus_tools.mcp251xfd.regmap import RegmapError, parse_regmap, read_regmap
from canbus_tools.mcp251xfd.regs import MEM_SIZE, ChipState


def test_parse_stores_values():
    state = ChipState()
    count = parse_regmap(state, ["000: 12345678", "004: deadbeef"])
    assert count == 2
    assert state.read_u32(0x000) == 0x12345678
    assert state.read_u32(0x004) == 0xDEADBEEF


def test_parse_skips_lines_that_do_not_match():
    state = ChipState()
    count = parse_regmap(state, ["garbage here", "010 1", "010: 7"])
    assert count == 1
    assert state.read_u32(0x010) == 7


def test_parse_accepts_text_block():
    state = ChipState()
    assert parse_regmap(state, "e00: 00000460\ne04: 00000003\n") == 2
    assert state.read_u32(0xE00) == 0x460
    assert state.read_u32(0xE04) == 3


def test_parse_empty_raises():
    with pytest.raises(RegmapError):
        parse_regmap(ChipState(), [])


def test_parse_register_outside_image_raises():
    with pytest.raises(RegmapError):
        parse_regmap(ChipState(), [f"{MEM_SIZE:x}: 1"])


def test_read_regmap_file(tmp_path, capsys):
    path = tmp_path / "registers"
    path.write_text("400: 000000aa\n404: 000000bb\n")
    state = ChipState()
    assert read_regmap(state, path) == 2
    assert state.read_u32(0x404) == 0xBB
    assert capsys.readouterr().out == f"regmap: Found 2 registers in {path}\n"


def test_read_regmap_empty_file_reports_and_raises(tmp_path, capsys):
    path = tmp_path / "registers"
    path.write_text("nothing useful\n")
    with pytest.raises(RegmapError):
        read_regmap(ChipState(), path)
    assert capsys.readouterr().out == f"regmap: Found 0 registers in {path}\n"


def test_read_regmap_missing_path_raises(tmp_path):
    with pytest.raises(RegmapError):
        read_regmap(ChipState(), tmp_path / "missing")


def test_read_regmap_unknown_shortcut_raises():
    with pytest.raises(RegmapError):
        read_regmap(ChipState(), "no-such-device-for-tests")