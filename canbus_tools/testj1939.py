"""Demonstration tool for SAE J1939 sockets: bind, connect, send, receive, echo."""

from __future__ import annotations

import argparse
import dataclasses
import errno
import re
import signal
import socket
import sys
import time
from typing import Any

from canbus_tools.j1939addr import (
    J1939Address,
    addr2str,
    interface_name,
    parse_canaddr,
)

J1939_NO_ADDR = 0xFF
J1939_NO_NAME = 0
J1939_NO_PGN = 0x40000

MAX_PAYLOAD = 128

_SOCKADDR_SIZE = 24
_INT_SIZE = 4

_SOL_CAN_J1939 = getattr(socket, "SOL_CAN_J1939", 107)
_SO_J1939_PROMISC = getattr(socket, "SO_J1939_PROMISC", 2)
_SO_J1939_SEND_PRIO = getattr(socket, "SO_J1939_SEND_PRIO", 3)
_CAN_J1939 = getattr(socket, "CAN_J1939", 7)

HELP = (
    "testj1939: demonstrate j1939 use\n"
    "Usage: testj1939 [OPTIONS] FROM TO\n"
    " FROM / TO\t- or [IFACE][:[SA][,[PGN][,NAME]]]\n"
    "Options:\n"
    " -v\t\tPrint relevant API calls\n"
    " -s[=LEN]\tInitial send of LEN bytes dummy data\n"
    " -r\t\tReceive (and print) data\n"
    " -e\t\tEcho incoming packets back\n"
    "\t\tThis actually receives packets\n"
    " -c\t\tIssue connect()\n"
    " -p=PRIO\tSet priority to PRIO\n"
    " -P\t\tPromiscuous mode. Allow to receive all packets\n"
    " -b\t\tDo normal bind with SA+1 and rebind with actual SA\n"
    " -B\t\tAllow to send and receive broadcast packets.\n"
    " -o\t\tOmit bind\n"
    " -n\t\tEmit 64bit NAMEs in output\n"
    " -w[TIME]\tReturn after TIME (default 1) seconds\n"
    "\n"
    "Examples:\n"
    "testj1939 can1 20\n"
    "\n"
)

_FLAGS = {
    "v": "verbose",
    "r": "recv",
    "e": "echo",
    "P": "promisc",
    "c": "connect",
    "n": "names",
    "b": "rebind",
    "B": "broadcast",
    "o": "no_bind",
}
_OPTIONAL_ARG = frozenset("sw")
_REQUIRED_ARG = frozenset("p")

_UL_RE = re.compile(r"\s*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")
_FLOAT_RE = re.compile(r"\s*[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)")


class _Timeout(Exception):
    """The requested run time has elapsed."""


def _strtoul(text: str) -> int:
    match = _UL_RE.match(text)
    if match is None:
        return 0
    digits = match.group(2)
    if digits[:2].lower() == "0x":
        value = int(digits[2:], 16)
    elif digits.startswith("0"):
        value = int(digits, 8)
    else:
        value = int(digits)
    if match.group(1) == "-":
        value = -value
    return value % (1 << 64)


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _strtod(text: str) -> float:
    match = _FLOAT_RE.match(text)
    return float(match.group(0)) if match else 0.0


def payload_pattern(size: int) -> bytes:
    """Return the first ``size`` bytes of the dummy test vector."""
    if not 0 <= size <= MAX_PAYLOAD:
        raise ValueError(f"Unsupported size. max: {MAX_PAYLOAD}")
    return bytes((((2 * j) << 4) + ((2 * j + 1) & 0xF)) & 0xFF for j in range(size))


def format_packet(data: bytes, address: Any, show_names: bool) -> str:
    """Render a received packet with its sender address, eight bytes per line."""
    out = []
    if show_names and address.name:
        out.append(f"{address.name:016x} ")
    out.append(f"{address.addr:02x} {address.pgn:05x}:")
    for i, byte in enumerate(data):
        if i and i % 8 == 0:
            out.append(f"\n{i:05x}    ")
        out.append(f" {byte:02x}")
    out.append("\n")
    return "".join(out)


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse the command line; raise ValueError on invalid usage."""
    args = argparse.Namespace(
        verbose=False,
        send=0,
        recv=False,
        echo=False,
        prio=-1,
        promisc=False,
        connect=False,
        names=False,
        rebind=False,
        broadcast=False,
        no_bind=False,
        wait=None,
        source=None,
        dest=None,
    )
    positional: list[str] = []
    items = list(argv)
    index = 0
    while index < len(items):
        arg = items[index]
        index += 1
        if arg == "--":
            positional.extend(items[index:])
            break
        if arg == "-" or not arg.startswith("-"):
            positional.append(arg)
            continue
        pos = 1
        while pos < len(arg):
            opt = arg[pos]
            pos += 1
            if opt in _FLAGS:
                setattr(args, _FLAGS[opt], True)
                continue
            if opt in _OPTIONAL_ARG:
                value = arg[pos:] or None
                pos = len(arg)
                if opt == "s":
                    size = _strtoul(value if value is not None else "8")
                    if size > MAX_PAYLOAD:
                        raise ValueError(f"Unsupported size. max: {MAX_PAYLOAD}")
                    args.send = size
                else:
                    args.wait = _strtod(value if value is not None else "1")
                continue
            if opt in _REQUIRED_ARG:
                if pos < len(arg):
                    value = arg[pos:]
                elif index < len(items):
                    value = items[index]
                    index += 1
                else:
                    raise ValueError(f"option -{opt} requires an argument")
                pos = len(arg)
                args.prio = _to_int32(_strtoul(value))
                continue
            raise ValueError(f"invalid option -{opt}")

    if positional:
        args.source = positional[0]
    if len(positional) > 1:
        args.dest = positional[1]
    return args


def _err(message: str, exc: BaseException | None = None) -> int:
    detail = ""
    if isinstance(exc, OSError) and exc.strerror:
        detail = f": {exc.strerror}"
    elif exc is not None:
        detail = f": {exc}"
    print(f"testj1939: {message}{detail}", file=sys.stderr)
    return 1


def _note(verbose: bool, text: str) -> None:
    if verbose:
        print(f"- {text}", file=sys.stderr)


def _default_address() -> J1939Address:
    return J1939Address(ifindex=0, name=J1939_NO_NAME, pgn=J1939_NO_PGN, addr=J1939_NO_ADDR)


def _parse(spec: str, base: J1939Address) -> J1939Address:
    result = parse_canaddr(spec, base)
    return base if result is None else result


def _sockaddr(address: J1939Address) -> tuple[str, int, int, int]:
    ifname = ""
    if address.ifindex:
        ifname = interface_name(address.ifindex) or ""
        if not ifname:
            raise OSError(errno.ENODEV, "No such device")
    return (ifname, address.name, address.pgn, address.addr)


def _schedule(delay: float) -> None:
    seconds = int(delay)
    micro = int(delay * 1e6) % 1_000_000
    if seconds < 0 or delay < 0:
        raise OSError(errno.EINVAL, "Invalid argument")
    signal.setitimer(signal.ITIMER_REAL, seconds + micro / 1e6)


def _on_alarm(signum: int, _frame) -> None:
    """Report the elapsed run time and unwind the main loop."""
    print("testj1939: exit as requested", file=sys.stderr)
    sys.stderr.flush()
    raise _Timeout(signum)


def main(argv: list[str] | None = None) -> int:
    raw_args = sys.argv[1:] if argv is None else list(argv)
    try:
        args = parse_args(raw_args)
    except ValueError as exc:
        if str(exc).startswith("Unsupported size"):
            return _err(str(exc))
        sys.stderr.write(HELP)
        return 1

    if args.wait is not None:
        try:
            _schedule(args.wait)
        except (OSError, ValueError) as exc:
            return _err(f"schedule itimer {args.wait:.3f}s", exc)
        signal.signal(signal.SIGALRM, _on_alarm)

    try:
        return _run(args)
    except _Timeout:
        return 0


def _run(args: argparse.Namespace) -> int:
    verbose = args.verbose
    sockname = _default_address()
    peername = _default_address()
    valid_peername = False

    if args.source is not None and args.source != "-":
        sockname = _parse(args.source, sockname)
    if args.rebind:
        sockname = dataclasses.replace(sockname, addr=(sockname.addr + 1) & 0xFF)
    if args.dest is not None and args.dest != "-":
        peername = _parse(args.dest, peername)
        valid_peername = True

    _note(verbose, "socket(PF_CAN, SOCK_DGRAM, CAN_J1939);")
    try:
        sock = socket.socket(socket.AF_CAN, socket.SOCK_DGRAM, _CAN_J1939)
    except OSError as exc:
        return _err("socket(j1939)", exc)

    with sock:
        if args.promisc:
            _note(verbose, f"setsockopt(, SOL_SOCKET, SO_J1939_PROMISC, 1, {_INT_SIZE});")
            try:
                sock.setsockopt(_SOL_CAN_J1939, _SO_J1939_PROMISC, 1)
            except OSError as exc:
                return _err("setsockopt: filed to set promiscuous mode", exc)

        if args.broadcast:
            _note(verbose, f"setsockopt(, SOL_SOCKET, SO_BROADCAST, 1, {_INT_SIZE});")
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            except OSError as exc:
                return _err("setsockopt: filed to set broadcast", exc)

        if args.prio >= 0:
            _note(verbose, f"setsockopt(, SOL_CAN_J1939, SO_J1939_SEND_PRIO, &{args.prio});")
            try:
                sock.setsockopt(_SOL_CAN_J1939, _SO_J1939_SEND_PRIO, args.prio)
            except OSError as exc:
                return _err(f"set priority {args.prio}", exc)

        if not args.no_bind:
            _note(verbose, f"bind(, {addr2str(sockname)}, {_SOCKADDR_SIZE});")
            try:
                sock.bind(_sockaddr(sockname))
            except OSError as exc:
                return _err("bind()", exc)
            if args.rebind:
                sockname = dataclasses.replace(sockname, addr=(sockname.addr - 1) & 0xFF)
                _note(verbose, f"bind(, {addr2str(sockname)}, {_SOCKADDR_SIZE});")
                try:
                    sock.bind(_sockaddr(sockname))
                except OSError as exc:
                    return _err("re-bind()", exc)

        if args.connect:
            if not valid_peername:
                return _err("no peername supplied")
            _note(verbose, f"connect(, {addr2str(peername)}, {_SOCKADDR_SIZE});")
            try:
                sock.connect(_sockaddr(peername))
            except OSError as exc:
                return _err("connect()", exc)

        if args.send:
            data = payload_pattern(args.send)
            try:
                if valid_peername and not args.connect:
                    _note(verbose, f"sendto(, <dat>, {args.send}, 0, "
                                   f"{addr2str(peername)}, {_SOCKADDR_SIZE});")
                    sock.sendto(data, _sockaddr(peername))
                else:
                    _note(verbose, f"send(, <dat>, {args.send}, 0);")
                    sock.send(data)
            except OSError as exc:
                return _err("sendto", exc)

        if args.echo or args.recv:
            _note(verbose, "while (1)")
        while args.echo or args.recv:
            _note(verbose, f"recvfrom(, <dat>, {_SOCKADDR_SIZE}, 0, &<peername>, {_SOCKADDR_SIZE});")
            try:
                data, source = sock.recvfrom(MAX_PAYLOAD)
            except InterruptedError:
                _note(verbose, "\t<interrupted>")
                continue
            except OSError as exc:
                return _err("recvfrom()", exc)

            ifname, name, pgn, addr = source
            try:
                ifindex = socket.if_nametoindex(ifname) if ifname else 0
            except OSError:
                ifindex = 0
            peername = dataclasses.replace(
                peername, ifindex=ifindex, name=name, pgn=pgn, addr=addr
            )

            if args.echo:
                _note(verbose, f"sendto(, <dat>, {len(data)}, 0, "
                               f"{addr2str(peername)}, {_SOCKADDR_SIZE});")
                try:
                    sock.sendto(data, source)
                except OSError as exc:
                    return _err("sendto", exc)
            if args.recv:
                sys.stdout.write(format_packet(data, peername, args.names))
                sys.stdout.flush()

        if args.wait is not None:
            while True:
                time.sleep(1)
    return 0


if __name__ == "__main__":
    sys.exit(main())