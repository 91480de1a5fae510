from types import SimpleNamespace

import pytest

from canbus_tools.testj1939 import (
    HELP,
    MAX_PAYLOAD,
    format_packet,
    main,
    parse_args,
    payload_pattern,
)


def test_payload_pattern_first_bytes():
    assert payload_pattern(8) == bytes.fromhex("0123456789abcdef")


def test_payload_pattern_repeats_every_eight():
    data = payload_pattern(MAX_PAYLOAD)
    assert len(data) == MAX_PAYLOAD
    assert all(data[i] == data[i % 8] for i in range(MAX_PAYLOAD))


def test_payload_pattern_prefix():
    assert payload_pattern(5) == payload_pattern(MAX_PAYLOAD)[:5]
    assert payload_pattern(0) == b""


def test_payload_pattern_too_large():
    with pytest.raises(ValueError):
        payload_pattern(MAX_PAYLOAD + 1)


def _peer(addr=0x20, pgn=0x12300, name=0):
    return SimpleNamespace(addr=addr, pgn=pgn, name=name)


def test_format_packet_short():
    assert format_packet(b"\x01\x02", _peer(), False) == "20 12300: 01 02\n"


def test_format_packet_wraps_after_eight_bytes():
    text = format_packet(bytes(range(1, 10)), _peer(), False)
    assert text == "20 12300: 01 02 03 04 05 06 07 08\n00008     09\n"


def test_format_packet_line_count():
    text = format_packet(bytes(20), _peer(), False)
    assert text.count("\n") == 3
    assert text.count(" 00") == 20


def test_format_packet_names():
    shown = format_packet(b"\xaa", _peer(name=0x1122), True)
    hidden = format_packet(b"\xaa", _peer(name=0x1122), False)
    assert shown == "0000000000001122 " + hidden


def test_format_packet_zero_name_not_shown():
    assert format_packet(b"", _peer(), True) == format_packet(b"", _peer(), False)


def test_parse_args_defaults_and_positionals():
    args = parse_args(["can1", "20"])
    assert args.source == "can1"
    assert args.dest == "20"
    assert args.send == 0
    assert args.prio == -1
    assert args.wait is None
    assert not args.recv


def test_parse_args_send_default_and_explicit():
    assert parse_args(["-s"]).send == 8
    assert parse_args(["-s16"]).send == 16
    assert parse_args(["-s0x10"]).send == 16


def test_parse_args_send_too_large():
    with pytest.raises(ValueError, match="Unsupported size"):
        parse_args(["-s200"])


def test_parse_args_grouped_flags_and_prio():
    args = parse_args(["-vrePcnbBo", "-p", "3", "-", "vcan0:0x80"])
    assert args.verbose and args.recv and args.echo and args.promisc
    assert args.connect and args.names and args.rebind and args.broadcast
    assert args.no_bind
    assert args.prio == 3
    assert args.source == "-"
    assert args.dest == "vcan0:0x80"


def test_parse_args_attached_prio_and_wait():
    args = parse_args(["-p6", "-w2.5", "can0"])
    assert args.prio == 6
    assert args.wait == 2.5
    assert parse_args(["-w"]).wait == 1.0


def test_parse_args_permutes_options():
    args = parse_args(["can0", "-r", "30"])
    assert args.recv
    assert (args.source, args.dest) == ("can0", "30")


@pytest.mark.parametrize("argv", [["-x"], ["-?"], ["-p"]])
def test_parse_args_invalid(argv):
    with pytest.raises(ValueError):
        parse_args(argv)


def test_main_unknown_option_prints_help(capsys):
    assert main(["-x"]) == 1
    assert capsys.readouterr().err == HELP


def test_main_size_error(capsys):
    assert main(["-s999"]) == 1
    assert "Unsupported size. max: 128" in capsys.readouterr().err