"""J1939 socket address parsing and formatting."""

from __future__ import annotations

import socket
import string
from dataclasses import dataclass, replace

J1939_NO_ADDR = 0xFF
J1939_NO_NAME = 0
J1939_PGN_REQUEST = 0x0EA00
J1939_PGN_ADDRESS_CLAIMED = 0x0EE00
J1939_PGN_MAX = 0x3FFFF
J1939_NO_PGN = 0x40000

IFNAMSIZ = 16

_U8 = 0xFF
_U32 = 0xFFFFFFFF
_U64 = 0xFFFFFFFFFFFFFFFF
_ALNUM = set(string.digits + string.ascii_letters)


@dataclass(frozen=True)
class J1939Address:
    """Address of a J1939 socket endpoint."""

    ifindex: int = 0
    name: int = J1939_NO_NAME
    addr: int = J1939_NO_ADDR
    pgn: int = J1939_NO_PGN


def _digit(ch: str, base: int) -> int | None:
    if ch not in _ALNUM:
        return None
    value = int(ch, 36)
    return value if value < base else None


def _strtoul(text: str, base: int) -> tuple[int, int]:
    """Parse an integer like the C library does.

    Returns the value and the number of characters consumed; zero consumed
    means no conversion took place.
    """
    i = 0
    n = len(text)
    while i < n and text[i] in " \t\n\v\f\r":
        i += 1
    negative = False
    if i < n and text[i] in "+-":
        negative = text[i] == "-"
        i += 1
    if (
        base in (0, 16)
        and text[i : i + 2].lower() == "0x"
        and i + 2 < n
        and _digit(text[i + 2], 16) is not None
    ):
        i += 2
        base = 16
    elif base == 0:
        base = 8 if text[i : i + 1] == "0" else 10
    start = i
    while i < n and _digit(text[i], base) is not None:
        i += 1
    if i == start:
        return 0, 0
    value = int(text[start:i], base)
    return (-value if negative else value), i


def interface_name(ifindex: int) -> str | None:
    """Return the name of the network interface with index ``ifindex``."""
    for index, name in socket.if_nameindex():
        if index == ifindex:
            return name
    return None


def interface_index(text: str) -> int:
    """Resolve a numeric index or an interface name; 0 when unknown."""
    value, consumed = _strtoul(text, 0)
    if consumed == len(text):
        return value
    for index, name in socket.if_nameindex():
        if name == text:
            return index
    return 0


def _name_to_index(name: str) -> int:
    try:
        return socket.if_nametoindex(name)
    except OSError:
        return 0


def parse_canaddr(spec: str, base: J1939Address | None = None) -> J1939Address:
    """Apply ``[IFACE][:[SA][,[PGN][,NAME]]]`` on top of ``base``."""
    result = base if base is not None else J1939Address()
    iface, sep, rest = spec.partition(":")
    if iface:
        result = replace(result, ifindex=_name_to_index(iface))
    if not sep:
        return result
    fields = rest.split(",")[:3]
    converters = (("addr", _U8), ("pgn", _U32), ("name", _U64))
    for token, (attr, mask) in zip(fields, converters):
        if token:
            value, _ = _strtoul(token, 0)
            result = replace(result, **{attr: value & mask})
    return result


def str2addr(text: str) -> J1939Address:
    """Parse ``[IFACE:]ADDR|NAME[,PGN]`` with hexadecimal fields."""
    colon = text.find(":")
    if colon >= 0:
        ifname = text[:colon]
        if len(ifname) >= IFNAMSIZ:
            raise ValueError(f"interface name too long: {ifname!r}")
        ifindex = interface_index(ifname)
        rest = text[colon + 1 :]
    else:
        ifindex = interface_index(text)
        if ifindex:
            return J1939Address(ifindex=ifindex)
        rest = text

    result = J1939Address(ifindex=ifindex)
    value, consumed = _strtoul(rest, 16)
    if consumed == 0:
        return result
    if consumed == 2:
        result = replace(result, addr=value & _U8)
    else:
        result = replace(result, name=value & _U64)
    if consumed == len(rest):
        return result

    tail = rest[consumed + 1 :]
    pgn, used = _strtoul(tail, 16)
    if used > 0:
        result = replace(result, pgn=pgn & _U32)
    return result


def addr2str(address: J1939Address) -> str:
    """Format an address in the form accepted by :func:`str2addr`."""
    parts = []
    if address.ifindex:
        ifname = interface_name(address.ifindex)
        parts.append(f"#{address.ifindex}:" if ifname is None else f"{ifname}:")
    if address.name:
        parts.append(f"{address.name:016x}")
        if address.pgn == J1939_PGN_ADDRESS_CLAIMED:
            parts.append(f".{address.addr:02x}")
    elif address.addr <= 0xFE:
        parts.append(f"{address.addr:02x}")
    else:
        parts.append("-")
    if address.pgn <= J1939_PGN_MAX:
        parts.append(f",{address.pgn:05x}")
    return "".join(parts)