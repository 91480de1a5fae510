"""Bridge between the slcan ASCII protocol on a pty and a raw CAN socket."""

from __future__ import annotations

import fcntl
import os
import re
import select
import socket
import struct
import sys
import termios
import time

from canbus_tools.can import (
    CAN_EFF_FLAG,
    CAN_EFF_MASK,
    CAN_MTU,
    CAN_RTR_FLAG,
    CAN_SFF_MASK,
    CanFrame,
)

DEVICE_NAME_PTMX = "/dev/ptmx"

# receive buffer of the pty side, one byte kept for the terminator
_RX_BUFFER_SIZE = 200

_ACK = b"\r"
_NACK = b"\a"

_FIXED_REPLIES = {
    ord("V"): b"V1013\r",
    ord("v"): b"v1014\r",
    ord("N"): b"N4242\r",
    ord("F"): b"F00\r",
}

_FRAME_COMMANDS = frozenset(b"tTrR")

_HEX_PREFIX = re.compile(r"\s*([+-]?)(?:0[xX](?=[0-9a-fA-F]))?([0-9a-fA-F]*)")

_SIOCGSTAMP = 0x8906
_TIOCGPTN = 0x80045430
_TIOCSPTLCK = 0x40045431


def _strtoul16(raw: bytes) -> int:
    """Parse a leading hexadecimal number, 0 when there is none."""
    match = _HEX_PREFIX.match(raw.decode("latin-1"))
    if match is None or not match.group(2):
        return 0
    value = int(match.group(2), 16)
    return -value if match.group(1) == "-" else value


def _nibble(char: int) -> int:
    """Value of an ASCII hex digit, 16 for anything else."""
    if 0x30 <= char <= 0x39:
        return char - 0x30
    if 0x41 <= char <= 0x46:
        return char - 0x41 + 10
    if 0x61 <= char <= 0x66:
        return char - 0x61 + 10
    return 16


class SlcanTranslator:
    """Turns slcan ASCII commands into CAN frames and protocol replies."""

    def __init__(self) -> None:
        self.is_open = False
        self.timestamps = False
        self._pending = b""

    @property
    def read_size(self) -> int:
        """How many more bytes may be read from the pty in one go."""
        return _RX_BUFFER_SIZE - 1 - len(self._pending)

    def feed(self, data: bytes) -> tuple[bytes, list[CanFrame]]:
        """Process received bytes; return the reply bytes and frames to send."""
        buf = self._pending + bytes(data)
        self._pending = b""
        reply = bytearray()
        frames: list[CanFrame] = []

        while True:
            # be robust against applications sending extra '\r'
            buf = buf.lstrip(b"\r")
            if not buf:
                break
            if b"\r" not in buf:
                self._pending = buf
                break
            last, answer, frame = self._command(buf)
            if frame is not None:
                frames.append(frame)
            reply += answer
            if len(buf) <= last + 1:
                break
            buf = buf[last + 1 :]

        return bytes(reply), frames

    def _command(self, buf: bytes) -> tuple[int, bytes, CanFrame | None]:
        """Handle the command at the start of ``buf``.

        Returns the index of its last character, the reply and an optional
        frame to transmit.
        """

        def at(index: int) -> int:
            return buf[index] if index < len(buf) else 0

        cmd = buf[0]

        if cmd in b"mM":
            # acceptance filters are not mapped onto socket filters
            return 9, _ACK, None
        if cmd == ord("Z"):
            self.timestamps = bool(at(1) & 0x01)
            return 2, _ACK, None
        if cmd == ord("O"):
            self.is_open = True
            return 1, _ACK, None
        if cmd == ord("C"):
            self.is_open = False
            return 1, _ACK, None
        if cmd in _FIXED_REPLIES:
            return 1, _FIXED_REPLIES[cmd], None
        if cmd in b"US":
            return 2, _ACK, None
        if cmd == ord("s"):
            return 5, _ACK, None
        if cmd in b"PA":
            return 1, _NACK, None
        if cmd == ord("X"):
            return 2, (_ACK if at(1) & 0x01 else _NACK), None
        if cmd not in _FRAME_COMMANDS:
            return len(buf) - 1, _NACK, None

        extended = not cmd & 0x20
        remote = (cmd | 0x20) == ord("r")
        dlc_pos = 9 if extended else 4
        ident = _strtoul16(buf[1:dlc_pos]) & 0xFFFFFFFF
        flags = CAN_EFF_FLAG if extended else 0

        if remote and at(dlc_pos) != ord("0"):
            # remote frame sent without DLC, a protocol violation we accept
            return dlc_pos - 1, _ACK, CanFrame(can_id=ident | flags | CAN_RTR_FLAG)

        if not ord("0") <= at(dlc_pos) < ord("9"):
            return dlc_pos, _NACK, None

        dlc = at(dlc_pos) - ord("0")
        can_id = ident | flags | (CAN_RTR_FLAG if remote else 0)

        data = bytearray()
        ptr = dlc_pos + 1
        for _ in range(dlc):
            high = _nibble(at(ptr))
            ptr += 1
            if high > 0x0F:
                return ptr, _NACK, None
            low = _nibble(at(ptr))
            ptr += 1
            if low > 0x0F:
                return ptr, _NACK, None
            data.append(high << 4 | low)
        if dlc:
            ptr -= 1

        return ptr, _ACK, CanFrame(can_id=can_id, data=bytes(data))


def encode_frame(frame: CanFrame, timestamp_ms: int | None = None) -> bytes:
    """Render a received CAN frame as an slcan message."""
    cmd = "R" if frame.can_id & CAN_RTR_FLAG else "T"
    if frame.can_id & CAN_EFF_FLAG:
        text = f"{cmd}{frame.can_id & CAN_EFF_MASK:08X}{len(frame.data)}"
    else:
        text = f"{cmd.lower()}{frame.can_id & CAN_SFF_MASK:03X}{len(frame.data)}"
    text += frame.data.hex().upper()
    if timestamp_ms is not None:
        text += f"{timestamp_ms:04X}"
    return (text + "\r").encode("ascii")


def _perror(what: str, exc: OSError) -> None:
    print(f"{what}: {exc.strerror or exc}", file=sys.stderr)


def _usage(prg: str) -> None:
    sys.stderr.write(
        f"{prg}: adapter for applications using the slcan ASCII protocol.\n"
        f"\n{prg} creates a pty for applications using the slcan ASCII protocol and\n"
        "converts the ASCII data to a CAN network interface (and vice versa)\n\n"
        f"Usage: {prg} <pty> <can interface>\n"
        "\nExamples:\n"
        f"{prg} /dev/ptyc0 can0  - creates /dev/ttyc0 for the slcan application\n\n"
        f"e.g. for pseudo-terminal '{prg} {DEVICE_NAME_PTMX} can0' creates /dev/pts/N\n"
        "\n"
    )


def _stdin_selectable() -> bool:
    try:
        ready, _, _ = select.select([0], [], [], 0)
    except (OSError, ValueError):
        return False
    if ready:
        try:
            if os.read(0, 1) == b"":
                return False
        except OSError:
            return False
    return True


def _slave_name(fd: int) -> str:
    if hasattr(os, "ptsname"):
        os.grantpt(fd)
        os.unlockpt(fd)
        return os.ptsname(fd)
    fcntl.ioctl(fd, _TIOCSPTLCK, struct.pack("i", 0))
    number = struct.unpack("I", fcntl.ioctl(fd, _TIOCGPTN, struct.pack("I", 0)))[0]
    return f"/dev/pts/{number}"


def _timestamp_ms(sock: socket.socket) -> int:
    try:
        raw = fcntl.ioctl(sock.fileno(), _SIOCGSTAMP, bytes(struct.calcsize("@ll")))
        sec, usec = struct.unpack("@ll", raw)
    except OSError as exc:
        _perror("SIOCGSTAMP", exc)
        now = time.time()
        sec, usec = int(now), int((now % 1) * 1_000_000)
    return (sec % 60) * 1000 + usec // 1000


def _configure_pty(fd: int) -> None:
    attrs = termios.tcgetattr(fd)
    lflags = (
        termios.ICANON
        | termios.ECHO
        | termios.ECHOE
        | termios.ECHOK
        | termios.ECHONL
        | getattr(termios, "ECHOPRT", 0)
        | getattr(termios, "ECHOKE", 0)
    )
    # disable local echo which would cause double frames
    attrs[3] &= ~lflags
    attrs[0] &= ~termios.ICRNL
    attrs[0] |= termios.INLCR
    termios.tcsetattr(fd, termios.TCSANOW, attrs)


def _set_reception(sock: socket.socket, enabled: bool) -> None:
    value = struct.pack("=II", 0, 0) if enabled else b""
    sock.setsockopt(socket.SOL_CAN_RAW, socket.CAN_RAW_FILTER, value)


def _run(pty_fd: int, pty_path: str, ifname: str, select_stdin: bool) -> int:
    try:
        _configure_pty(pty_fd)
    except termios.error as exc:
        print(f"tcgetattr: {exc}", file=sys.stderr)
        return 1

    if pty_path == DEVICE_NAME_PTMX:
        try:
            name = _slave_name(pty_fd)
        except OSError as exc:
            _perror("ptsname", exc)
            return 1
        print(f"open: {pty_path}: slave pseudo-terminal is {name}")

    try:
        can_sock = socket.socket(socket.AF_CAN, socket.SOCK_RAW, socket.CAN_RAW)
    except OSError as exc:
        _perror("socket", exc)
        return 1

    with can_sock:
        try:
            socket.if_nametoindex(ifname)
        except OSError as exc:
            _perror("if_nametoindex", exc)
            return 1

        # no reception until the application opens the channel
        _set_reception(can_sock, False)
        try:
            can_sock.bind((ifname,))
        except OSError as exc:
            _perror("bind", exc)
            return 1

        translator = SlcanTranslator()
        receiving = False
        stdin_fd = 0

        while True:
            watched = ([stdin_fd] if select_stdin else []) + [pty_fd, can_sock.fileno()]
            try:
                ready, _, _ = select.select(watched, [], [])
            except OSError as exc:
                _perror("select", exc)
                return 1

            if select_stdin and stdin_fd in ready:
                break

            if pty_fd in ready:
                size = translator.read_size
                if size <= 0:
                    break
                try:
                    data = os.read(pty_fd, size)
                except OSError as exc:
                    _perror("read pty", exc)
                    break
                if not data:
                    break
                reply, frames = translator.feed(data)
                if translator.is_open != receiving:
                    _set_reception(can_sock, translator.is_open)
                    receiving = translator.is_open
                try:
                    sent_all = all(can_sock.send(frame.pack()) == CAN_MTU for frame in frames)
                except OSError as exc:
                    _perror("write socket", exc)
                    break
                if not sent_all:
                    print("write socket: short write", file=sys.stderr)
                    break
                if reply:
                    try:
                        os.write(pty_fd, reply)
                    except OSError as exc:
                        _perror("write pty replybuf", exc)
                        break

            if can_sock.fileno() in ready:
                try:
                    raw = can_sock.recv(CAN_MTU)
                except OSError as exc:
                    _perror("read socket", exc)
                    break
                if len(raw) != CAN_MTU:
                    print("read socket: incomplete CAN frame", file=sys.stderr)
                    break
                frame = CanFrame.unpack(raw)
                stamp = _timestamp_ms(can_sock) if translator.timestamps else None
                try:
                    os.write(pty_fd, encode_frame(frame, stamp))
                except OSError as exc:
                    _perror("write pty", exc)
                    break

    return 0


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    prg = os.path.basename(sys.argv[0]) if argv is None and sys.argv[0] else "slcanpty"
    if len(args) != 2:
        _usage(prg)
        return 1

    pty_path, ifname = args
    select_stdin = _stdin_selectable()

    try:
        pty_fd = os.open(pty_path, os.O_RDWR)
    except OSError as exc:
        _perror("open pty", exc)
        return 1

    try:
        return _run(pty_fd, pty_path, ifname, select_stdin)
    finally:
        os.close(pty_fd)


if __name__ == "__main__":
    sys.exit(main())