"""Daemon that attaches the slcan line discipline to a serial tty and holds it."""

from __future__ import annotations

import argparse
import fcntl
import getopt
import os
import re
import signal
import socket
import struct
import sys
import syslog
import termios
import time
from typing import Callable

from canbus_tools.slcan_attach import IFNAMSIZ, N_SLCAN, N_TTY, build_commands

DAEMON_NAME = "slcand"
DEV_PREFIX = "/dev/"
TTYPATH_LENGTH = 256

_OPTSTRING = "ocfls:S:t:b:?hF"

_TIOCSETD = getattr(termios, "TIOCSETD", 0x5423)
_TIOCGSERIAL = getattr(termios, "TIOCGSERIAL", 0x541E)
_TIOCSSERIAL = getattr(termios, "TIOCSSERIAL", 0x541F)
_SIOCGIFNAME = 0x8910
_SIOCSIFNAME = 0x8923
_ASYNC_LOW_LATENCY = 1 << 13
_SERIAL_STRUCT_SIZE = 72
_SERIAL_FLAGS_OFFSET = 16
_CRTSCTS = getattr(termios, "CRTSCTS", 0x80000000)

_LONG_MAX = (1 << 63) - 1
_LONG_MIN = -(1 << 63)

_UART_SPEED_NAMES = (
    (9600, "B9600"),
    (19200, "B19200"),
    (38400, "B38400"),
    (57600, "B57600"),
    (115200, "B115200"),
    (230400, "B230400"),
    (460800, "B460800"),
    (500000, "B500000"),
    (576000, "B576000"),
    (921600, "B921600"),
    (1000000, "B1000000"),
    (1152000, "B1152000"),
    (1500000, "B1500000"),
    (2000000, "B2000000"),
    (2500000, "B2500000"),
    (3000000, "B3000000"),
    (3500000, "B3500000"),
    (4000000, "B4000000"),
)

_UART_SPEEDS = {
    baud: getattr(termios, name)
    for baud, name in _UART_SPEED_NAMES
    if hasattr(termios, name)
}

_USAGE = """{prg} - userspace daemon for serial line CAN interface driver SLCAN.

Usage: {prg} [options] <tty> [canif-name]

Options:
         -o          (send open command 'O\\r')
         -c          (send close command 'C\\r')
         -f          (read status flags with 'F\\r' to reset error states)
         -l          (send listen only command 'L\\r', overrides -o)
         -s <speed>  (set CAN speed 0..8)
         -S <speed>  (set UART speed in baud)
         -t <type>   (set UART flow control type 'hw' or 'sw')
         -b <btr>    (set bit time register value)
         -F          (stay in foreground; no daemonize)
         -h          (show this help page)

Examples:
slcand -o -c -f -s6 ttyUSB0

slcand -o -c -f -s6 ttyUSB0 can0

slcand -o -c -f -s6 /dev/ttyUSB0

"""


class _UsageError(ValueError):
    """The command line does not follow the usage."""


Logger = Callable[[int, str], None]


def look_up_uart_speed(baud: int) -> int:
    """Return the termios speed constant for ``baud``; raise ValueError if unsupported."""
    try:
        return _UART_SPEEDS[baud]
    except KeyError:
        raise ValueError(f"Unsupported UART speed ({baud})") from None


def tty_path(tty: str) -> str:
    """Prefix ``tty`` with /dev/ unless it already starts with it."""
    path = tty if tty.startswith(DEV_PREFIX) else DEV_PREFIX + tty
    return path[: TTYPATH_LENGTH - 1]


def _strtol10(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    if match is None:
        return 0
    value = int(match.group(1))
    if not _LONG_MIN <= value <= _LONG_MAX:
        raise _UsageError(f"UART speed out of range: {text!r}")
    return value


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse the command line; raise ValueError on invalid usage."""
    try:
        opts, rest = getopt.gnu_getopt(list(argv), _OPTSTRING)
    except getopt.GetoptError as exc:
        raise _UsageError(str(exc)) from exc

    args = argparse.Namespace(
        open=False,
        close=False,
        read_status_flags=False,
        listen=False,
        speed=None,
        uart_speed=None,
        flow=None,
        btr=None,
        foreground=False,
        tty=None,
        name=None,
    )
    switches = {
        "-o": "open",
        "-c": "close",
        "-f": "read_status_flags",
        "-l": "listen",
        "-F": "foreground",
    }
    for opt, value in opts:
        if opt in switches:
            setattr(args, switches[opt], True)
        elif opt == "-s":
            if len(value) > 1:
                raise _UsageError(f"invalid CAN speed {value!r}")
            args.speed = value
        elif opt == "-S":
            baud = _strtol10(value)
            look_up_uart_speed(baud)
            args.uart_speed = baud
        elif opt == "-t":
            if value not in ("hw", "sw"):
                raise ValueError(f"Unsupported flow type ({value})")
            args.flow = value
        elif opt == "-b":
            if len(value) > 8:
                raise _UsageError(f"invalid bit time register value {value!r}")
            args.btr = value
        else:
            raise _UsageError(f"help requested with {opt}")

    if not rest:
        raise _UsageError("no tty given")
    args.tty = rest[0]
    if len(rest) > 1:
        if len(rest[1]) > IFNAMSIZ - 1:
            raise _UsageError(f"netdevice name too long: {rest[1]!r}")
        args.name = rest[1]
    return args


def _fake_syslog(priority: int, message: str) -> None:
    print(f"[{priority}] {message}", flush=True)


def _perror(what: str, exc: OSError) -> None:
    print(f"{what}: {exc.strerror or exc}", file=sys.stderr)


def _make_raw(attrs: list) -> None:
    attrs[0] &= ~(
        termios.IGNBRK | termios.BRKINT | termios.PARMRK | termios.ISTRIP
        | termios.INLCR | termios.IGNCR | termios.ICRNL | termios.IXON
    )
    attrs[1] &= ~termios.OPOST
    attrs[3] &= ~(termios.ECHO | termios.ECHONL | termios.ICANON | termios.ISIG | termios.IEXTEN)
    attrs[2] &= ~(termios.CSIZE | termios.PARENB)
    attrs[2] |= termios.CS8
    cc = list(attrs[6])
    cc[termios.VMIN] = 1
    cc[termios.VTIME] = 0
    attrs[6] = cc


def _set_low_latency(fd: int) -> None:
    try:
        raw = bytearray(fcntl.ioctl(fd, _TIOCGSERIAL, bytes(_SERIAL_STRUCT_SIZE)))
        (flags,) = struct.unpack_from("i", raw, _SERIAL_FLAGS_OFFSET)
        struct.pack_into("i", raw, _SERIAL_FLAGS_OFFSET, flags | _ASYNC_LOW_LATENCY)
        fcntl.ioctl(fd, _TIOCSSERIAL, bytes(raw))
    except OSError:
        pass


def _write(fd: int, command: bytes) -> bool:
    try:
        if os.write(fd, command) <= 0:
            print("write: nothing written", file=sys.stderr)
            return False
    except OSError as exc:
        _perror("write", exc)
        return False
    return True


def _detach() -> None:
    """Detach from the controlling terminal within the running process."""
    try:
        os.setsid()
    except PermissionError:
        # already a process group leader; keep running in the current session
        pass
    os.chdir("/")
    null = os.open(os.devnull, os.O_RDWR)
    for target in (0, 1, 2):
        os.dup2(null, target)
    if null > 2:
        os.close(null)


def _rename(current: str, new: str, path: str, log: Logger) -> bool:
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, 0)
    except OSError as exc:
        _perror("socket for interface rename", exc)
        return True
    with sock:
        ifreq = struct.pack(
            f"{IFNAMSIZ}s{IFNAMSIZ}s8x", current.encode("ascii"), new.encode("ascii")
        )
        try:
            fcntl.ioctl(sock.fileno(), _SIOCSIFNAME, ifreq)
        except OSError as exc:
            log(syslog.LOG_NOTICE, f"netdevice {current} rename to {new} failed\n")
            _perror("ioctl SIOCSIFNAME rename", exc)
            return False
    log(syslog.LOG_NOTICE, f"netdevice {current} renamed to {new}\n")
    return True


def _run(args: argparse.Namespace, log: Logger) -> int:
    path = tty_path(args.tty)
    log(syslog.LOG_INFO, f"starting on TTY device {path}")

    try:
        fd = os.open(path, os.O_RDWR | os.O_NONBLOCK | os.O_NOCTTY)
    except OSError as exc:
        log(syslog.LOG_NOTICE, f"failed to open TTY device {path}\n")
        _perror(path, exc)
        return 1

    try:
        return _serve(fd, path, args, log)
    finally:
        os.close(fd)


def _serve(fd: int, path: str, args: argparse.Namespace, log: Logger) -> int:
    try:
        attrs = termios.tcgetattr(fd)
    except termios.error as exc:
        log(syslog.LOG_NOTICE, f"failed to get attributes for TTY device {path}: {exc}\n")
        return 1

    _set_low_latency(fd)

    old_ispeed, old_ospeed = attrs[4], attrs[5]

    _make_raw(attrs)
    attrs[0] &= ~termios.IXOFF
    attrs[2] &= ~_CRTSCTS
    if args.uart_speed is not None:
        speed = look_up_uart_speed(args.uart_speed)
        attrs[4] = attrs[5] = speed
    if args.flow == "hw":
        attrs[2] |= _CRTSCTS
    elif args.flow == "sw":
        attrs[0] |= termios.IXON | termios.IXOFF

    try:
        termios.tcsetattr(fd, termios.TCSADRAIN, attrs)
    except termios.error as exc:
        log(syslog.LOG_NOTICE, f'Cannot set attributes for device "{path}": {exc}!\n')

    commands = build_commands(
        args.speed, args.btr, args.read_status_flags, args.listen, args.open
    )
    for command in commands:
        if not _write(fd, command):
            return 1

    try:
        fcntl.ioctl(fd, _TIOCSETD, struct.pack("i", N_SLCAN))
    except OSError as exc:
        _perror("ioctl TIOCSETD", exc)
        return 1

    try:
        raw = fcntl.ioctl(fd, _SIOCGIFNAME, bytes(IFNAMSIZ))
    except OSError as exc:
        _perror("ioctl SIOCGIFNAME", exc)
        return 1
    ifname = raw.split(b"\0", 1)[0].decode("ascii", errors="replace")
    log(syslog.LOG_NOTICE, f"attached TTY {path} to netdevice {ifname}\n")

    if args.name and not _rename(ifname, args.name, path, log):
        return 1

    running = True
    exit_code = 0

    def on_signal(signum: int, _frame) -> None:
        nonlocal running, exit_code
        log(syslog.LOG_NOTICE, f"received signal {signum} on {path}")
        exit_code = 128 + signum
        running = False

    if args.foreground:
        signal.signal(signal.SIGINT, on_signal)
        signal.signal(signal.SIGTERM, on_signal)
    else:
        try:
            _detach()
        except OSError:
            log(syslog.LOG_ERR, "failed to daemonize")
            return 1

    while running:
        time.sleep(1)

    log(syslog.LOG_INFO, f"stopping on TTY device {path}")
    try:
        fcntl.ioctl(fd, _TIOCSETD, struct.pack("i", N_TTY))
    except OSError as exc:
        _perror("ioctl TIOCSETD", exc)
        return 1

    if args.close and not _write(fd, b"C\r"):
        return 1

    attrs[4], attrs[5] = old_ispeed, old_ospeed
    try:
        termios.tcsetattr(fd, termios.TCSADRAIN, attrs)
    except termios.error as exc:
        log(syslog.LOG_NOTICE, f'Cannot set attributes for device "{path}": {exc}!\n')

    log(syslog.LOG_NOTICE, f"terminated on {path}")
    return exit_code


def main(argv: list[str] | None = None) -> int:
    prg = sys.argv[0] if argv is None and sys.argv[0] else DAEMON_NAME
    raw_args = sys.argv[1:] if argv is None else list(argv)
    try:
        args = parse_args(raw_args)
    except _UsageError:
        sys.stderr.write(_USAGE.format(prg=prg))
        return 1
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1

    log: Logger = _fake_syslog if args.foreground else syslog.syslog
    syslog.openlog(DAEMON_NAME, syslog.LOG_PID, syslog.LOG_LOCAL5)
    try:
        return _run(args, log)
    finally:
        syslog.closelog()


if __name__ == "__main__":
    sys.exit(main())