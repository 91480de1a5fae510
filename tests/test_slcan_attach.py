import pytest

from canbus_tools.slcan_attach import build_commands, main, parse_args


def test_build_commands_full_order():
    commands = build_commands("6", "4E1C", True, False, True)
    assert commands == [b"C\rS6\r", b"C\rs4E1C\r", b"F\r", b"O\r"]


def test_listen_overrides_open():
    assert build_commands(None, None, False, True, True) == [b"L\r"]


def test_build_commands_nothing_requested():
    assert build_commands(None, None, False, False, False) == []


def test_parse_args_example_line():
    args = parse_args(["-w", "-o", "-f", "-s6", "-c", "/dev/ttyS1"])
    assert args.waitkey and args.open and args.read_status_flags and args.close
    assert not args.detach
    assert args.speed == "6"
    assert args.tty == "/dev/ttyS1"


def test_parse_args_name_after_tty():
    args = parse_args(["/dev/ttyS1", "-w", "-n", "can15"])
    assert args.name == "can15"
    assert args.tty == "/dev/ttyS1"


@pytest.mark.parametrize(
    "argv",
    [
        ["-s12", "/dev/ttyS1"],
        ["-b123456789", "/dev/ttyS1"],
        ["-n", "a" * 16, "/dev/ttyS1"],
        ["-x", "/dev/ttyS1"],
        ["-?", "/dev/ttyS1"],
        [],
        ["/dev/ttyS1", "/dev/ttyS2"],
    ],
)
def test_parse_args_rejects_bad_usage(argv):
    with pytest.raises(ValueError):
        parse_args(argv)


def test_main_usage_error(capsys):
    assert main(["-s12", "/dev/ttyS1"]) == 1
    assert "Usage" in capsys.readouterr().err


def test_main_missing_tty(tmp_path):
    assert main([str(tmp_path / "missing")]) == 1


def test_main_writes_commands_before_attaching(tmp_path):
    target = tmp_path / "tty"
    target.write_bytes(b"")
    # a regular file cannot take a line discipline, so attaching fails
    assert main(["-s6", "-o", str(target)]) == 1
    assert target.read_bytes() == b"C\rS6\rO\r"


def test_main_detach_fails_before_close(tmp_path):
    target = tmp_path / "tty"
    target.write_bytes(b"")
    assert main(["-d", "-c", str(target)]) == 1
    assert target.read_bytes() == b""