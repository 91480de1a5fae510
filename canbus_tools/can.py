"""Classical CAN frame layout, identifier flags and DLC helpers."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

# special address description flags for the CAN identifier
CAN_EFF_FLAG = 0x80000000
CAN_RTR_FLAG = 0x40000000
CAN_ERR_FLAG = 0x20000000

# valid bits in the CAN identifier for the frame formats
CAN_SFF_MASK = 0x000007FF
CAN_EFF_MASK = 0x1FFFFFFF
CAN_ERR_MASK = 0x1FFFFFFF

CAN_SFF_ID_BITS = 11
CAN_EFF_ID_BITS = 29

# payload length and DLC limits
CAN_MAX_DLC = 8
CAN_MAX_RAW_DLC = 15
CAN_MAX_DLEN = 8
CANFD_MAX_DLC = 15
CANFD_MAX_DLEN = 64

# CAN FD frame flags
CANFD_BRS = 0x01
CANFD_ESI = 0x02
CANFD_FDF = 0x04

# sizes of the frame structures on the socket
CAN_MTU = 16
CANFD_MTU = 72

# protocols of the CAN protocol family
CAN_RAW = 1
CAN_BCM = 2
CAN_TP16 = 3
CAN_TP20 = 4
CAN_MCNET = 5
CAN_ISOTP = 6
CAN_J1939 = 7

CAN_INV_FILTER = 0x20000000
CAN_RAW_FILTER_MAX = 512

BITS_PER_LONG = 64

_DLC2LEN = (0, 1, 2, 3, 4, 5, 6, 7, 8, 12, 16, 20, 24, 32, 48, 64)

_FRAME_LAYOUT = struct.Struct("=IBBBB8s")


def bit(nr: int) -> int:
    """Return an integer with only bit ``nr`` set."""
    if not 0 <= nr < BITS_PER_LONG:
        raise ValueError(f"bit number out of range: {nr}")
    return 1 << nr


def genmask(high: int, low: int) -> int:
    """Return a contiguous bit mask covering bits ``low`` through ``high``."""
    if not 0 <= low <= high < BITS_PER_LONG:
        raise ValueError(f"invalid mask bounds: high={high} low={low}")
    return ((1 << (high + 1)) - 1) & ~((1 << low) - 1)


def field_get(mask: int, value: int) -> int:
    """Extract the field selected by ``mask`` from ``value``, shifted down."""
    if mask <= 0:
        raise ValueError("mask must have at least one bit set")
    shift = (mask & -mask).bit_length() - 1
    return (value & mask) >> shift


def field_prep(mask: int, value: int) -> int:
    """Shift ``value`` into the field selected by ``mask``."""
    if mask <= 0:
        raise ValueError("mask must have at least one bit set")
    shift = (mask & -mask).bit_length() - 1
    return (value << shift) & mask


def get_canfd_dlc(dlc: int) -> int:
    """Clamp a DLC value to the CAN FD maximum."""
    return min(dlc & 0xFF, CANFD_MAX_DLC)


def can_dlc2len(dlc: int) -> int:
    """Map a (sanitised) DLC value to the payload length in bytes."""
    return _DLC2LEN[dlc & 0x0F]


@dataclass
class CanFrame:
    """A classical CAN frame as exchanged over a raw CAN socket."""

    can_id: int = 0
    data: bytes = field(default=b"")
    len8_dlc: int = 0

    def __post_init__(self) -> None:
        self.data = bytes(self.data)
        if len(self.data) > CAN_MAX_DLEN:
            raise ValueError(f"payload longer than {CAN_MAX_DLEN} bytes")
        if not 0 <= self.can_id <= 0xFFFFFFFF:
            raise ValueError(f"CAN identifier out of range: {self.can_id:#x}")
        if not 0 <= self.len8_dlc <= 0xFF:
            raise ValueError(f"len8_dlc out of range: {self.len8_dlc}")

    @property
    def length(self) -> int:
        return len(self.data)

    @property
    def is_extended(self) -> bool:
        return bool(self.can_id & CAN_EFF_FLAG)

    @property
    def is_remote(self) -> bool:
        return bool(self.can_id & CAN_RTR_FLAG)

    @property
    def is_error(self) -> bool:
        return bool(self.can_id & CAN_ERR_FLAG)

    @property
    def arbitration_id(self) -> int:
        mask = CAN_EFF_MASK if self.is_extended else CAN_SFF_MASK
        return self.can_id & mask

    def pack(self) -> bytes:
        """Serialise the frame into its socket representation."""
        return _FRAME_LAYOUT.pack(
            self.can_id,
            len(self.data),
            0,
            0,
            self.len8_dlc,
            self.data.ljust(CAN_MAX_DLEN, b"\x00"),
        )

    @classmethod
    def unpack(cls, data: bytes) -> "CanFrame":
        """Build a frame from its socket representation."""
        if len(data) != CAN_MTU:
            raise ValueError(f"expected {CAN_MTU} bytes, got {len(data)}")
        can_id, length, _pad, _res0, len8_dlc, payload = _FRAME_LAYOUT.unpack(data)
        if length > CAN_MAX_DLEN:
            raise ValueError(f"invalid payload length {length}")
        return cls(can_id=can_id, data=payload[:length], len8_dlc=len8_dlc)