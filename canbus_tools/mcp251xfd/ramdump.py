"""Ring layout analysis and message RAM dump of the MCP251xFD."""

from __future__ import annotations

import struct

from canbus_tools.can import can_dlc2len, field_get, get_canfd_dlc
from canbus_tools.mcp251xfd import regs as hw
from canbus_tools.mcp251xfd.regdump import (
    DumpRegs,
    FifoRegs,
    decode_registers,
    fifo_is_rx,
    fifo_is_unused,
    format_registers,
)
from canbus_tools.mcp251xfd.regs import (
    DUMP_UNKNOWN,
    ChipState,
    ObjectType,
    Ring,
    object_type_name,
)

_PLSIZE_BYTES = {
    hw.REG_FIFOCON_PLSIZE_8: 8,
    hw.REG_FIFOCON_PLSIZE_12: 12,
    hw.REG_FIFOCON_PLSIZE_16: 16,
    hw.REG_FIFOCON_PLSIZE_20: 20,
    hw.REG_FIFOCON_PLSIZE_24: 24,
    hw.REG_FIFOCON_PLSIZE_32: 32,
    hw.REG_FIFOCON_PLSIZE_48: 48,
    hw.REG_FIFOCON_PLSIZE_64: 64,
}

# largest hardware object: RX object header plus a full CAN FD payload
_HW_OBJ_MAX = hw.HW_RX_OBJ_HEADER_SIZE + 64

_RING_TYPES = (ObjectType.TEF, ObjectType.RX, ObjectType.TX)


def _fifo_payload_size(fifo: FifoRegs) -> int:
    return _PLSIZE_BYTES.get(field_get(hw.REG_FIFOCON_PLSIZE_MASK, fifo.con), 0)


def _fifo_obj_num(fifo: FifoRegs) -> int:
    return (field_get(hw.REG_FIFOCON_FSIZE_MASK, fifo.con) + 1) & 0xFF


def _obj_addr(ring: Ring, n: int) -> int:
    return (ring.base + ring.obj_size * n) & 0xFFFF


def _ring_head(ring: Ring) -> int:
    return (ring.head & (ring.obj_num - 1)) & 0xFF


def _ring_tail(ring: Ring) -> int:
    return (ring.tail & (ring.obj_num - 1)) & 0xFF


def _chip_head(ring: Ring) -> int:
    return field_get(hw.REG_FIFOSTA_FIFOCI_MASK, ring.fifo.sta) & 0xFF


def _chip_tail(ring: Ring) -> int:
    if not ring.obj_size:
        raise ValueError(f"ring of FIFO {ring.fifo_nr} has no object size")
    offset = (ring.fifo.ua - (ring.base - hw.RAM_START)) & 0xFFFFFFFF
    return (offset // ring.obj_size) & 0xFF


def analyze_regs_and_ram(state: ChipState, regs: DumpRegs) -> str:
    """Derive the ring layout from the FIFO registers; return a summary line."""
    ram = state.read_bytes(hw.RAM_START, hw.RAM_SIZE)
    base = hw.RAM_START
    nr_rx = nr_tx = 0

    for index, fifo_regs in enumerate(regs.fifo):
        ring = state.rings[index]
        if index == hw.RING_TEF:
            # FIFO 0 is the TXQ, unused by the driver; the TEF lives here
            fifo = regs.tef
            ring.type = ObjectType.TEF
            ring.nr = 0
            ring.obj_size = hw.HW_TEF_OBJ_SIZE
        else:
            fifo = fifo_regs
            if fifo_is_unused(fifo):
                continue
            if fifo_is_rx(fifo):
                ring.type = ObjectType.RX
                ring.nr = nr_rx
                nr_rx = (nr_rx + 1) & 0xFF
                ring.obj_size = (hw.HW_RX_OBJ_HEADER_SIZE + _fifo_payload_size(fifo)) & 0xFF
            else:
                ring.type = ObjectType.TX
                ring.nr = nr_tx
                nr_tx = (nr_tx + 1) & 0xFF
                ring.obj_size = (hw.HW_TX_OBJ_HEADER_SIZE + _fifo_payload_size(fifo)) & 0xFF

        ring.fifo = fifo
        ring.ram = ram[base - hw.RAM_START :]
        ring.base = base
        ring.fifo_nr = index
        ring.obj_num = _fifo_obj_num(fifo)
        base = _obj_addr(ring, ring.obj_num)

    return (
        f"Found {nr_rx} RX-FIFO{'s' if nr_rx > 1 else ''}, "
        f"{nr_tx} TX-FIFO{'s' if nr_tx > 1 else ''}\n\n"
    )


def _mask_line(name: str, mask: int, value: int, fmt: str, desc: str) -> str:
    return f"{name:>16} = {fmt.format(field_get(mask, value))}\t\t{desc}\n"


def _chip_fifo_flags(ring: Ring, n: int) -> str:
    if _chip_tail(ring) != n:
        return ""
    sta = ring.fifo.sta
    if ring.type == ObjectType.TX:
        if not sta & hw.REG_FIFOSTA_TFNRFNIF:
            return "  chip-FIFO-full"
        if sta & hw.REG_FIFOSTA_TFERFFIF:
            return "  chip-FIFO-empty"
    else:
        if sta & hw.REG_FIFOSTA_TFERFFIF:
            return "  chip-FIFO-full"
        if not sta & hw.REG_FIFOSTA_TFNRFNIF:
            return "  chip-FIFO-empty"
    return ""


def _ring_fifo_flags(ring: Ring, n: int) -> str:
    if (
        ring.head == DUMP_UNKNOWN
        or ring.tail == DUMP_UNKNOWN
        or _ring_tail(ring) != n
        or _ring_head(ring) != _ring_tail(ring)
    ):
        return ""
    return "  ring-FIFO-empty" if ring.head == ring.tail else "  ring-FIFO-full"


def _format_data(data: bytes, dlc: int) -> str:
    length = can_dlc2len(get_canfd_dlc(dlc))
    if not length:
        return f"{'data':>16} = -none-\n"
    out = []
    for i, byte in enumerate(data[:length]):
        if i % 8 == 0:
            out.append(f"{'data':>16} = {byte:02x}" if i == 0 else f"{'':19}{byte:02x}")
        elif i % 4 == 0:
            out.append(f"  {byte:02x}")
        elif i % 8 == 7:
            out.append(f" {byte:02x}\n")
        else:
            out.append(f" {byte:02x}")
    if length % 8:
        out.append("\n")
    return "".join(out)


def _hw_obj(ram: bytes, ring: Ring, n: int) -> bytes:
    start = ring.base - hw.RAM_START + ring.obj_size * n
    chunk = ram[start : start + _HW_OBJ_MAX] if start >= 0 else b""
    return chunk.ljust(_HW_OBJ_MAX, b"\x00")


def _format_object(ring: Ring, obj: bytes, n: int) -> str:
    obj_id, flags, ts = struct.unpack_from("<3I", obj)
    markers = (
        "  chip-HEAD" if ring.type != ObjectType.TEF and _chip_head(ring) == n else "",
        "  ring-HEAD" if ring.head != DUMP_UNKNOWN and _ring_head(ring) == n else "",
        "  chip-TAIL" if _chip_tail(ring) == n else "",
        "  ring-TAIL" if ring.tail != DUMP_UNKNOWN and _ring_tail(ring) == n else "",
        _chip_fifo_flags(ring, n),
        _ring_fifo_flags(ring, n),
    )
    out = [
        f"{object_type_name(ring.type)}-{ring.nr} Object: "
        f"0x{n:02x} (0x{_obj_addr(ring, n):03x}){''.join(markers)}\n",
        f"{'id':>16} = 0x{obj_id:08x}\n",
        f"{'flags':>16} = 0x{flags:08x}\n",
    ]
    if ring.type in (ObjectType.TEF, ObjectType.RX):
        out.append(f"{'ts':>16} = 0x{ts:08x}\n")

    if ring.type == ObjectType.TEF:
        out.append(_mask_line("SEQ", hw.OBJ_FLAGS_SEQ_MASK, flags, "0x{:06x}", "Sequence"))
    elif ring.type == ObjectType.TX:
        out.append(_mask_line("SEQ_MCP2517FD", hw.OBJ_FLAGS_SEQ_MCP2517FD_MASK, flags,
                              "0x{:06x}", "Sequence (MCP2517)"))
        out.append(_mask_line("SEQ_MCP2518FD", hw.OBJ_FLAGS_SEQ_MCP2518FD_MASK, flags,
                              "0x{:06x}", "Sequence (MCP2518)"))

    if ring.type in (ObjectType.RX, ObjectType.TX):
        offset = hw.HW_RX_OBJ_HEADER_SIZE if ring.type == ObjectType.RX else hw.HW_TX_OBJ_HEADER_SIZE
        dlc = field_get(hw.OBJ_FLAGS_DLC, flags)
        out.append(_format_data(obj[offset:], dlc))

    out.append("\n")
    return "".join(out)


def _format_ring(ring: Ring, ram: bytes) -> str:
    out = [f"\n{object_type_name(ring.type)}-{ring.nr} FIFO {ring.fifo_nr} Overview:\n"]
    if ring.type == ObjectType.TEF:
        if ring.head == DUMP_UNKNOWN:
            out.append(f"{'head ( / )':>16}\n")
        else:
            out.append(f"{'head ( /r)':>16} =         0x{_ring_head(ring):02x}    0x{ring.head:08x}\n")
    elif ring.head == DUMP_UNKNOWN:
        out.append(f"{'head (c/ )':>16} = 0x{_chip_head(ring):02x}\n")
    else:
        out.append(f"{'head (c/r)':>16} = 0x{_chip_head(ring):02x}    "
                   f"0x{_ring_head(ring):02x}    0x{ring.head:08x}\n")

    if ring.tail == DUMP_UNKNOWN:
        out.append(f"{'tail (c/ )':>16} = 0x{_chip_tail(ring):02x}\n")
    else:
        out.append(f"{'tail (c/r)':>16} = 0x{_chip_tail(ring):02x}    "
                   f"0x{_ring_tail(ring):02x}    0x{ring.tail:08x}\n")
    out.append("\n")

    for n in range(ring.obj_num):
        out.append(_format_object(ring, _hw_obj(ram, ring, n), n))
    return "".join(out)


def format_ram(state: ChipState, regs: DumpRegs, ram: bytes) -> str:
    """Render every analysed ring and its message objects from ``ram``."""
    out = ["----------------------- RAM dump ----------------------\n"]
    for ring in state.rings[: len(regs.fifo)]:
        if ring.type in _RING_TYPES:
            out.append(_format_ring(ring, bytes(ram)))
    out.append("------------------------- end -------------------------\n")
    return "".join(out)


def dump(state: ChipState) -> str:
    """Analyse the chip image and return the full register and RAM dump."""
    regs, regs_mcp = decode_registers(state)
    ram = state.read_bytes(hw.RAM_START, hw.RAM_SIZE)
    summary = analyze_regs_and_ram(state, regs)
    return summary + format_registers(regs, regs_mcp) + format_ram(state, regs, ram)