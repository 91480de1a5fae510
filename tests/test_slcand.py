import termios

import pytest

from canbus_tools.slcand import look_up_uart_speed, main, parse_args, tty_path


@pytest.mark.parametrize(
    "baud, name",
    [(9600, "B9600"), (115200, "B115200"), (1000000, "B1000000"), (2000000, "B2000000")],
)
def test_look_up_uart_speed_known(baud, name):
    assert look_up_uart_speed(baud) == getattr(termios, name)


@pytest.mark.parametrize("baud", [0, 12345, 300, -9600])
def test_look_up_uart_speed_unsupported(baud):
    with pytest.raises(ValueError, match="Unsupported UART speed"):
        look_up_uart_speed(baud)


def test_tty_path_adds_prefix():
    assert tty_path("ttyUSB0") == "/dev/ttyUSB0"


def test_tty_path_keeps_full_path():
    assert tty_path("/dev/ttyS1") == "/dev/ttyS1"


def test_tty_path_prefix_only_at_start():
    assert tty_path("x/dev/ttyS1") == "/dev/x/dev/ttyS1"


def test_tty_path_truncated():
    path = tty_path("a" * 400)
    assert len(path) == 255
    assert path.startswith("/dev/")


def test_parse_args_documented_example():
    args = parse_args(["-o", "-c", "-f", "-s6", "ttyUSB0", "can0"])
    assert args.open and args.close and args.read_status_flags
    assert not args.listen
    assert args.speed == "6"
    assert args.tty == "ttyUSB0"
    assert args.name == "can0"
    assert args.foreground is False
    assert args.uart_speed is None


def test_parse_args_options_after_tty():
    args = parse_args(["/dev/ttyUSB0", "-F", "-l"])
    assert args.tty == "/dev/ttyUSB0"
    assert args.foreground and args.listen
    assert args.name is None


def test_parse_args_uart_speed_and_flow():
    args = parse_args(["-S", "115200", "-t", "hw", "-b", "00014", "tty"])
    assert args.uart_speed == 115200
    assert args.flow == "hw"
    assert args.btr == "00014"


def test_parse_args_sw_flow():
    assert parse_args(["-t", "sw", "tty"]).flow == "sw"


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["-s", "12", "tty"],
        ["-b", "123456789", "tty"],
        ["-h", "tty"],
        ["-x", "tty"],
        ["tty", "averyverylongname"],
        ["-S", "12345", "tty"],
        ["-S", "abc", "tty"],
    ],
)
def test_parse_args_rejects(argv):
    with pytest.raises(ValueError):
        parse_args(argv)


def test_parse_args_flow_message():
    with pytest.raises(ValueError, match=r"Unsupported flow type \(xy\)"):
        parse_args(["-t", "xy", "tty"])


def test_main_help_prints_usage(capsys):
    assert main(["-h"]) == 1
    assert "Usage:" in capsys.readouterr().err


def test_main_bad_flow(capsys):
    assert main(["-t", "bad", "tty"]) == 1
    assert "Unsupported flow type (bad)" in capsys.readouterr().err