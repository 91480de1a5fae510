import pytest

from canbus_tools.can import CAN_EFF_FLAG, CAN_RTR_FLAG, CanFrame
from canbus_tools.slcanpty import SlcanTranslator, encode_frame, main


def test_open_and_close_commands():
    tr = SlcanTranslator()
    reply, frames = tr.feed(b"O\r")
    assert reply == b"\r"
    assert frames == []
    assert tr.is_open is True
    reply, _ = tr.feed(b"C\r")
    assert reply == b"\r"
    assert tr.is_open is False


@pytest.mark.parametrize(
    "command, expected",
    [(b"V\r", b"V1013\r"), (b"v\r", b"v1014\r"), (b"N\r", b"N4242\r"), (b"F\r", b"F00\r")],
)
def test_fixed_replies(command, expected):
    reply, frames = SlcanTranslator().feed(command)
    assert reply == expected
    assert frames == []


def test_standard_data_frame():
    reply, frames = SlcanTranslator().feed(b"t1232AABB\r")
    assert reply == b"\r"
    assert frames == [CanFrame(can_id=0x123, data=b"\xaa\xbb")]


def test_extended_data_frame():
    reply, frames = SlcanTranslator().feed(b"T1234567820102\r")
    assert reply == b"\r"
    assert frames == [CanFrame(can_id=0x12345678 | CAN_EFF_FLAG, data=b"\x01\x02")]


def test_remote_frame_with_dlc_zero():
    _, frames = SlcanTranslator().feed(b"r1230\r")
    assert frames == [CanFrame(can_id=0x123 | CAN_RTR_FLAG)]


def test_remote_frame_without_dlc_is_accepted():
    reply, frames = SlcanTranslator().feed(b"r123\r")
    assert reply == b"\r"
    assert frames == [CanFrame(can_id=0x123 | CAN_RTR_FLAG)]


def test_invalid_dlc_is_rejected():
    reply, frames = SlcanTranslator().feed(b"t1239\r")
    assert reply == b"\a"
    assert frames == []


def test_bad_hex_payload_is_rejected():
    reply, frames = SlcanTranslator().feed(b"t1231ZZ\r")
    assert reply.startswith(b"\a")
    assert frames == []


def test_unknown_command_is_rejected():
    reply, frames = SlcanTranslator().feed(b"Q\r")
    assert reply == b"\a"
    assert frames == []


def test_unsupported_commands_answered():
    tr = SlcanTranslator()
    assert tr.feed(b"P\r")[0] == b"\a"
    assert tr.feed(b"S6\r")[0] == b"\r"
    assert tr.feed(b"X1\r")[0] == b"\r"
    assert tr.feed(b"X0\r")[0] == b"\a"


def test_timestamp_toggle():
    tr = SlcanTranslator()
    tr.feed(b"Z1\r")
    assert tr.timestamps is True
    tr.feed(b"Z0\r")
    assert tr.timestamps is False


def test_incomplete_message_is_kept():
    tr = SlcanTranslator()
    before = tr.read_size
    assert tr.feed(b"t12") == (b"", [])
    assert tr.read_size == before - 3
    reply, frames = tr.feed(b"30\r")
    assert reply == b"\r"
    assert frames == [CanFrame(can_id=0x123)]
    assert tr.read_size == before


def test_several_commands_in_one_buffer():
    tr = SlcanTranslator()
    reply, frames = tr.feed(b"\r\rO\rV\rt0011FF\r")
    assert reply == b"\rV1013\r\r"
    assert tr.is_open is True
    assert frames == [CanFrame(can_id=0x001, data=b"\xff")]


def test_encode_standard_frame():
    assert encode_frame(CanFrame(can_id=0x123, data=b"\x11\x22")) == b"t12321122\r"


def test_encode_extended_remote_frame():
    frame = CanFrame(can_id=0x12345678 | CAN_EFF_FLAG | CAN_RTR_FLAG)
    assert encode_frame(frame) == b"R123456780\r"


def test_encode_with_timestamp():
    encoded = encode_frame(CanFrame(can_id=0x7FF), 0x1234)
    assert encoded.endswith(b"1234\r")
    assert encoded.startswith(b"t7FF0")


@pytest.mark.parametrize(
    "frame",
    [
        CanFrame(can_id=0x7FF, data=bytes(range(8))),
        CanFrame(can_id=0x1ABCDEF0 | CAN_EFF_FLAG, data=b"\xde\xad"),
        CanFrame(can_id=0x010),
    ],
)
def test_encode_then_parse_round_trip(frame):
    reply, frames = SlcanTranslator().feed(encode_frame(frame))
    assert reply == b"\r"
    assert frames == [frame]


def test_main_requires_two_arguments(capsys):
    assert main([]) == 1
    assert "Usage" in capsys.readouterr().err