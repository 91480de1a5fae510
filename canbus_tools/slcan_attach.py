"""Attach or detach the slcan line discipline on a serial tty."""

from __future__ import annotations

import argparse
import fcntl
import getopt
import os
import socket
import struct
import sys
import termios

IFNAMSIZ = 16

N_TTY = 0
N_SLCAN = 17

_TIOCSETD = getattr(termios, "TIOCSETD", 0x5423)
_SIOCGIFNAME = 0x8910
_SIOCSIFNAME = 0x8923

_OPTSTRING = "ldwocfs:b:n:?"

_USAGE = """{prg} - userspace tool for serial line CAN interface driver SLCAN.

Usage: {prg} [options] tty

Options:
         -o          (send open command 'O\\r')
         -l          (send listen only command 'L\\r', overrides -o)
         -c          (send close command 'C\\r')
         -f          (read status flags with 'F\\r' to reset error states)
         -s <speed>  (set CAN speed 0..8)
         -b <btr>    (set bit time register value)
         -d          (only detach line discipline)
         -w          (attach - wait for keypress - detach)
         -n <name>   (assign created netdevice name)

    <speed>          Bitrate
          0            10 Kbit/s
          1            20 Kbit/s
          2            50 Kbit/s
          3           100 Kbit/s
          4           125 Kbit/s
          5           250 Kbit/s
          6           500 Kbit/s
          7           800 Kbit/s
          8          1000 Kbit/s


Examples:
slcan_attach -w -o -f -s6 -c /dev/ttyS1

slcan_attach /dev/ttyS1

slcan_attach -d /dev/ttyS1

slcan_attach -w -n can15 /dev/ttyS1

"""


def build_commands(
    speed: str | None,
    btr: str | None,
    read_status_flags: bool,
    listen: bool,
    open_channel: bool,
) -> list[bytes]:
    """Return the slcan setup commands to send, in order."""
    commands = []
    if speed:
        commands.append(f"C\rS{speed}\r".encode("ascii"))
    if btr:
        commands.append(f"C\rs{btr}\r".encode("ascii"))
    if read_status_flags:
        commands.append(b"F\r")
    if listen:
        commands.append(b"L\r")
    elif open_channel:
        commands.append(b"O\r")
    return commands


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse the command line; raise ValueError on invalid usage."""
    try:
        opts, rest = getopt.gnu_getopt(list(argv), _OPTSTRING)
    except getopt.GetoptError as exc:
        raise ValueError(str(exc)) from exc

    args = argparse.Namespace(
        detach=False,
        waitkey=False,
        open=False,
        listen=False,
        close=False,
        read_status_flags=False,
        speed=None,
        btr=None,
        name=None,
        tty=None,
    )
    switches = {
        "-d": "detach",
        "-w": "waitkey",
        "-o": "open",
        "-l": "listen",
        "-c": "close",
        "-f": "read_status_flags",
    }
    for opt, value in opts:
        if opt in switches:
            setattr(args, switches[opt], True)
        elif opt == "-s":
            if len(value) > 1:
                raise ValueError(f"invalid CAN speed {value!r}")
            args.speed = value
        elif opt == "-b":
            if len(value) > 8:
                raise ValueError(f"invalid bit time register value {value!r}")
            args.btr = value
        elif opt == "-n":
            if len(value) > IFNAMSIZ - 1:
                raise ValueError(f"netdevice name too long: {value!r}")
            args.name = value
        else:
            raise ValueError(f"unsupported option {opt}")

    if len(rest) != 1:
        raise ValueError("exactly one tty must be given")
    args.tty = rest[0]
    return args


def _perror(what: str, exc: OSError) -> None:
    print(f"{what}: {exc.strerror or exc}", file=sys.stderr)


def _set_discipline(fd: int, ldisc: int) -> None:
    fcntl.ioctl(fd, _TIOCSETD, struct.pack("i", ldisc))


def _netdevice_name(fd: int) -> str:
    raw = fcntl.ioctl(fd, _SIOCGIFNAME, bytes(IFNAMSIZ))
    return raw.split(b"\0", 1)[0].decode("ascii", errors="replace")


def _rename(current: str, new: str) -> None:
    print(f"rename netdevice {current} to {new} ... ", end="", flush=True)
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, 0)
    except OSError as exc:
        _perror("socket for interface rename", exc)
        return
    with sock:
        ifreq = struct.pack(
            f"{IFNAMSIZ}s{IFNAMSIZ}s8x",
            current.encode("ascii"),
            new.encode("ascii"),
        )
        try:
            fcntl.ioctl(sock.fileno(), _SIOCSIFNAME, ifreq)
        except OSError:
            print("failed!")
        else:
            print("ok.")


def _attach(fd: int, args: argparse.Namespace) -> int:
    commands = build_commands(
        args.speed, args.btr, args.read_status_flags, args.listen, args.open
    )
    for command in commands:
        try:
            if os.write(fd, command) <= 0:
                print("write: nothing written", file=sys.stderr)
                return 1
        except OSError as exc:
            _perror("write", exc)
            return 1

    try:
        _set_discipline(fd, N_SLCAN)
    except OSError as exc:
        _perror("ioctl TIOCSETD", exc)
        return 1

    try:
        ifname = _netdevice_name(fd)
    except OSError as exc:
        _perror("ioctl SIOCGIFNAME", exc)
        return 1

    print(f"attached tty {args.tty} to netdevice {ifname}")
    if args.name:
        _rename(ifname, args.name)
    return 0


def _detach(fd: int, args: argparse.Namespace) -> int:
    try:
        _set_discipline(fd, N_TTY)
    except OSError as exc:
        _perror("ioctl", exc)
        return 1
    if args.close:
        try:
            if os.write(fd, b"C\r") <= 0:
                print("write: nothing written", file=sys.stderr)
                return 1
        except OSError as exc:
            _perror("write", exc)
            return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    prg = sys.argv[0] if argv is None and sys.argv[0] else "slcan_attach"
    raw_args = sys.argv[1:] if argv is None else list(argv)
    try:
        args = parse_args(raw_args)
    except ValueError:
        sys.stderr.write(_USAGE.format(prg=prg))
        return 1

    try:
        fd = os.open(args.tty, os.O_WRONLY | os.O_NOCTTY)
    except OSError as exc:
        _perror(args.tty, exc)
        return 1

    try:
        if args.waitkey or not args.detach:
            status = _attach(fd, args)
            if status:
                return status

        if args.waitkey:
            print(f"Press any key to detach {args.tty} ...", flush=True)
            sys.stdin.read(1)

        if args.waitkey or args.detach:
            return _detach(fd, args)
        return 0
    finally:
        os.close(fd)


if __name__ == "__main__":
    sys.exit(main())