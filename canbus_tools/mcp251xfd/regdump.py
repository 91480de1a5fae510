"""Decoding and human-readable formatting of the MCP251xFD register set."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Sequence

from canbus_tools.can import field_get
from canbus_tools.mcp251xfd import regs as hw
from canbus_tools.mcp251xfd.regs import ChipState

_HEX2 = "0x{:02x}"
_DEC3 = "{:3d}"
_DEC2_HEX_PREFIX = "0x{:02d}"

_FIFO_COUNT = 32


@dataclass(frozen=True)
class FifoRegs:
    """Control, status and user address register of one FIFO."""

    con: int = 0
    sta: int = 0
    ua: int = 0


@dataclass(frozen=True)
class DumpRegs:
    """The CAN FD controller module registers starting at address 0."""

    con: int
    nbtcfg: int
    dbtcfg: int
    tdc: int
    tbc: int
    tscon: int
    vec: int
    intf: int
    rxif: int
    txif: int
    rxovif: int
    txatif: int
    txreq: int
    trec: int
    bdiag0: int
    bdiag1: int
    tef: FifoRegs
    reserved0: int
    fifo: tuple[FifoRegs, ...]
    fltcon: tuple[int, ...]
    filter: tuple[tuple[int, int], ...]

    WORDS = 16 + 3 + 1 + 3 * _FIFO_COUNT + 8 + 2 * 32

    @property
    def tefcon(self) -> int:
        return self.tef.con

    @property
    def tefsta(self) -> int:
        return self.tef.sta

    @property
    def tefua(self) -> int:
        return self.tef.ua

    @property
    def txq(self) -> FifoRegs:
        return self.fifo[0]

    @classmethod
    def from_words(cls, words: Sequence[int]) -> "DumpRegs":
        """Build the register set from consecutive 32-bit words."""
        words = tuple(words)
        if len(words) != cls.WORDS:
            raise ValueError(f"expected {cls.WORDS} words, got {len(words)}")
        head = words[:16]
        tef = FifoRegs(*words[16:19])
        reserved0 = words[19]
        fifo_words = words[20 : 20 + 3 * _FIFO_COUNT]
        fifo = tuple(FifoRegs(*fifo_words[n : n + 3]) for n in range(0, len(fifo_words), 3))
        rest = words[20 + 3 * _FIFO_COUNT :]
        fltcon = rest[:8]
        filter_words = rest[8:]
        filters = tuple(zip(filter_words[0::2], filter_words[1::2]))
        return cls(*head, tef, reserved0, fifo, fltcon, filters)


@dataclass(frozen=True)
class McpRegs:
    """The MCP2517/18FD specific registers starting at the OSC register."""

    osc: int
    iocon: int
    crc: int
    ecccon: int
    eccstat: int
    devid: int

    WORDS = 6

    @classmethod
    def from_words(cls, words: Sequence[int]) -> "McpRegs":
        """Build the register set from consecutive 32-bit words."""
        words = tuple(words)
        if len(words) != cls.WORDS:
            raise ValueError(f"expected {cls.WORDS} words, got {len(words)}")
        return cls(*words)


def decode_registers(state: ChipState) -> tuple[DumpRegs, McpRegs]:
    """Read both register sets out of the chip image."""
    regs = DumpRegs.from_words(state.bulk_read(hw.REG_CON, DumpRegs.WORDS))
    regs_mcp = McpRegs.from_words(state.bulk_read(hw.REG_OSC, McpRegs.WORDS))
    return regs, regs_mcp


def fifo_is_unused(fifo: FifoRegs) -> bool:
    """True if the FIFO still holds its reset configuration."""
    return fifo.con == 0x00600000 and fifo.sta == 0x00000000


def fifo_is_rx(fifo: FifoRegs) -> bool:
    """True if the FIFO is configured for reception."""
    return not fifo.con & hw.REG_FIFOCON_TXEN


class _Bit(NamedTuple):
    name: str
    mask: int
    desc: str

    def render(self, value: int) -> str:
        flag = "x" if value & self.mask else " "
        return f"{self.name:>16}   {flag}\t\t{self.desc}\n"


class _Mask(NamedTuple):
    name: str
    mask: int
    fmt: str
    desc: str

    def render(self, value: int) -> str:
        shown = self.fmt.format(field_get(self.mask, value))
        return f"{self.name:>16} = {shown}\t\t{self.desc}\n"


_SEG1 = "Time Segment 1 (Propagation Segment + Phase Segment 1)"
_SEG2 = "Time Segment 2 (Phase Segment 2)"
_PUSH_PULL = "(0: Push/Pull Output, 1: Open Drain Output)"

_FIELDS: dict[str, tuple[str, tuple]] = {
    "con": ("CON", (
        _Mask("TXBWS", hw.REG_CON_TXBWS_MASK, _HEX2, "Transmit Bandwidth Sharing"),
        _Bit("ABAT", hw.REG_CON_ABAT, "Abort All Pending Transmissions"),
        _Mask("REQOP", hw.REG_CON_REQOP_MASK, _HEX2, "Request Operation Mode"),
        _Mask("OPMOD", hw.REG_CON_OPMOD_MASK, _HEX2, "Operation Mode Status"),
        _Bit("TXQEN", hw.REG_CON_TXQEN, "Enable Transmit Queue"),
        _Bit("STEF", hw.REG_CON_STEF, "Store in Transmit Event FIFO"),
        _Bit("SERR2LOM", hw.REG_CON_SERR2LOM, "Transition to Listen Only Mode on System Error"),
        _Bit("ESIGM", hw.REG_CON_ESIGM, "Transmit ESI in Gateway Mode"),
        _Bit("RTXAT", hw.REG_CON_RTXAT, "Restrict Retransmission Attempts"),
        _Bit("BRSDIS", hw.REG_CON_BRSDIS, "Bit Rate Switching Disable"),
        _Bit("BUSY", hw.REG_CON_BUSY, "CAN Module is Busy"),
        _Mask("WFT", hw.REG_CON_WFT_MASK, _HEX2, "Selectable Wake-up Filter Time"),
        _Bit("WAKFIL", hw.REG_CON_WAKFIL, "Enable CAN Bus Line Wake-up Filter"),
        _Bit("PXEDIS", hw.REG_CON_PXEDIS, "Protocol Exception Event Detection Disabled"),
        _Bit("ISOCRCEN", hw.REG_CON_ISOCRCEN, "Enable ISO CRC in CAN FD Frames"),
        _Mask("DNCNT", hw.REG_CON_DNCNT_MASK, _HEX2, "Device Net Filter Bit Number"),
    )),
    "nbtcfg": ("NBTCFG", (
        _Mask("BRP", hw.REG_NBTCFG_BRP_MASK, _DEC3, "Baud Rate Prescaler"),
        _Mask("TSEG1", hw.REG_NBTCFG_TSEG1_MASK, _DEC3, _SEG1),
        _Mask("TSEG2", hw.REG_NBTCFG_TSEG2_MASK, _DEC3, _SEG2),
        _Mask("SJW", hw.REG_NBTCFG_SJW_MASK, _DEC3, "Synchronization Jump Width"),
    )),
    "dbtcfg": ("DBTCFG", (
        _Mask("BRP", hw.REG_DBTCFG_BRP_MASK, _DEC3, "Baud Rate Prescaler"),
        _Mask("TSEG1", hw.REG_DBTCFG_TSEG1_MASK, _DEC3, _SEG1),
        _Mask("TSEG2", hw.REG_DBTCFG_TSEG2_MASK, _DEC3, _SEG2),
        _Mask("SJW", hw.REG_DBTCFG_SJW_MASK, _DEC3, "Synchronization Jump Width"),
    )),
    "tdc": ("TDC", (
        _Bit("EDGFLTEN", hw.REG_TDC_EDGFLTEN, "Enable Edge Filtering during Bus Integration state"),
        _Bit("SID11EN", hw.REG_TDC_SID11EN, "Enable 12-Bit SID in CAN FD Base Format Messages"),
        _Mask("TDCMOD", hw.REG_TDC_TDCMOD_MASK, _HEX2, "Transmitter Delay Compensation Mode"),
        _Mask("TDCO", hw.REG_TDC_TDCO_MASK, _HEX2, "Transmitter Delay Compensation Offset"),
        _Mask("TDCV", hw.REG_TDC_TDCV_MASK, _HEX2, "Transmitter Delay Compensation Value"),
    )),
    "tbc": ("TBC", ()),
    "trec": ("TREC", (
        _Bit("TXBO", hw.REG_TREC_TXBO, "Transmitter in Bus Off State"),
        _Bit("TXBP", hw.REG_TREC_TXBP, "Transmitter in Error Passive State"),
        _Bit("RXBP", hw.REG_TREC_RXBP, "Receiver in Error Passive State"),
        _Bit("TXWARN", hw.REG_TREC_TXWARN, "Transmitter in Error Warning State"),
        _Bit("RXWARN", hw.REG_TREC_RXWARN, "Receiver in Error Warning State"),
        _Bit("EWARN", hw.REG_TREC_EWARN, "Transmitter or Receiver is in Error Warning State"),
        _Mask("TEC", hw.REG_TREC_TEC_MASK, _DEC3, "Transmit Error Counter"),
        _Mask("REC", hw.REG_TREC_REC_MASK, _DEC3, "Receive Error Counter"),
    )),
    "bdiag0": ("BDIAG0", (
        _Mask("DTERRCNT", hw.REG_BDIAG0_DTERRCNT_MASK, _DEC3, "Data Bit Rate Transmit Error Counter"),
        _Mask("DRERRCNT", hw.REG_BDIAG0_DRERRCNT_MASK, _DEC3, "Data Bit Rate Receive Error Counter"),
        _Mask("NTERRCNT", hw.REG_BDIAG0_NTERRCNT_MASK, _DEC3, "Nominal Bit Rate Transmit Error Counter"),
        _Mask("NRERRCNT", hw.REG_BDIAG0_NRERRCNT_MASK, _DEC3, "Nominal Bit Rate Receive Error Counter"),
    )),
    "bdiag1": ("BDIAG1", (
        _Bit("DLCMM", hw.REG_BDIAG1_DLCMM, "DLC Mismatch"),
        _Bit("ESI", hw.REG_BDIAG1_ESI, "ESI flag of a received CAN FD message was set"),
        _Bit("DCRCERR", hw.REG_BDIAG1_DCRCERR, "Data CRC Error"),
        _Bit("DSTUFERR", hw.REG_BDIAG1_DSTUFERR, "Data Bit Stuffing Error"),
        _Bit("DFORMERR", hw.REG_BDIAG1_DFORMERR, "Data Format Error"),
        _Bit("DBIT1ERR", hw.REG_BDIAG1_DBIT1ERR, "Data BIT1 Error"),
        _Bit("DBIT0ERR", hw.REG_BDIAG1_DBIT0ERR, "Data BIT0 Error"),
        _Bit("TXBOERR", hw.REG_BDIAG1_TXBOERR, "Device went to bus-off (and auto-recovered)"),
        _Bit("NCRCERR", hw.REG_BDIAG1_NCRCERR, "CRC Error"),
        _Bit("NSTUFERR", hw.REG_BDIAG1_NSTUFERR, "Bit Stuffing Error"),
        _Bit("NFORMERR", hw.REG_BDIAG1_NFORMERR, "Format Error"),
        _Bit("NACKERR", hw.REG_BDIAG1_NACKERR, "Transmitted message was not acknowledged"),
        _Bit("NBIT1ERR", hw.REG_BDIAG1_NBIT1ERR, "Bit1 Error"),
        _Bit("NBIT0ERR", hw.REG_BDIAG1_NBIT0ERR, "Bit0 Error"),
        _Mask("EFMSGCNT", hw.REG_BDIAG1_EFMSGCNT_MASK, _DEC3, "Error Free Message Counter"),
    )),
    "osc": ("OSC", (
        _Bit("SCLKRDY", hw.REG_OSC_SCLKRDY, "Synchronized SCLKDIV"),
        _Bit("OSCRDY", hw.REG_OSC_OSCRDY, "Clock Ready"),
        _Bit("PLLRDY", hw.REG_OSC_PLLRDY, "PLL Ready"),
        _Mask("CLKODIV", hw.REG_OSC_CLKODIV_MASK, _DEC2_HEX_PREFIX, "Clock Output Divisor"),
        _Bit("SCLKDIV", hw.REG_OSC_SCLKDIV, "System Clock Divisor"),
        _Bit("LPMEN", hw.REG_OSC_LPMEN, "Low Power Mode (LPM) Enable (MCP2518FD only)"),
        _Bit("OSCDIS", hw.REG_OSC_OSCDIS, "Clock (Oscillator) Disable"),
        _Bit("PLLEN", hw.REG_OSC_PLLEN, "PLL Enable"),
    )),
    "iocon": ("IOCON", (
        _Bit("INTOD", hw.REG_IOCON_INTOD, f"Interrupt pins Open Drain Mode {_PUSH_PULL}"),
        _Bit("SOF", hw.REG_IOCON_SOF, "Start-Of-Frame signal (0: Clock on CLKO pin, 1: SOF signal on CLKO pin)"),
        _Bit("TXCANOD", hw.REG_IOCON_TXCANOD, f"TXCAN Open Drain Mode {_PUSH_PULL}"),
        _Bit("PM1", hw.REG_IOCON_PM1, "GPIO Pin Mode (0: Interrupt Pin INT1 (RXIF), 1: Pin is used as GPIO1)"),
        _Bit("PM0", hw.REG_IOCON_PM0, "GPIO Pin Mode (0: Interrupt Pin INT0 (TXIF), 1: Pin is used as GPIO0)"),
        _Bit("GPIO1", hw.REG_IOCON_GPIO1, "GPIO1 Status"),
        _Bit("GPIO0", hw.REG_IOCON_GPIO0, "GPIO0 Status"),
        _Bit("LAT1", hw.REG_IOCON_LAT1, "GPIO1 Latch"),
        _Bit("LAT0", hw.REG_IOCON_LAT0, "GPIO0 Latch"),
        _Bit("XSTBYEN", hw.REG_IOCON_XSTBYEN, "Enable Transceiver Standby Pin Control"),
        _Bit("TRIS1", hw.REG_IOCON_TRIS1, "GPIO1 Data Direction (0: Output Pin, 1: Input Pin)"),
        _Bit("TRIS0", hw.REG_IOCON_TRIS0, "GPIO0 Data Direction (0: Output Pin, 1: Input Pin)"),
    )),
    "tefcon": ("TEFCON", (
        _Mask("FSIZE", hw.REG_TEFCON_FSIZE_MASK, _DEC3, "FIFO Size"),
        _Bit("FRESET", hw.REG_TEFCON_FRESET, "FIFO Reset"),
        _Bit("UINC", hw.REG_TEFCON_UINC, "Increment Tail"),
        _Bit("TEFTSEN", hw.REG_TEFCON_TEFTSEN, "Transmit Event FIFO Time Stamp Enable"),
        _Bit("TEFOVIE", hw.REG_TEFCON_TEFOVIE, "Transmit Event FIFO Overflow Interrupt Enable"),
        _Bit("TEFFIE", hw.REG_TEFCON_TEFFIE, "Transmit Event FIFO Full Interrupt Enable"),
        _Bit("TEFHIE", hw.REG_TEFCON_TEFHIE, "Transmit Event FIFO Half Full Interrupt Enable"),
        _Bit("TEFNEIE", hw.REG_TEFCON_TEFNEIE, "Transmit Event FIFO Not Empty Interrupt Enable"),
    )),
    "tefsta": ("TEFSTA", (
        _Bit("TEFOVIF", hw.REG_TEFSTA_TEFOVIF, "Transmit Event FIFO Overflow Interrupt Flag"),
        _Bit("TEFFIF", hw.REG_TEFSTA_TEFFIF, "Transmit Event FIFO Full Interrupt Flag (0: not full)"),
        _Bit("TEFHIF", hw.REG_TEFSTA_TEFHIF, "Transmit Event FIFO Half Full Interrupt Flag (0: < half full)"),
        _Bit("TEFNEIF", hw.REG_TEFSTA_TEFNEIF, "Transmit Event FIFO Not Empty Interrupt Flag (0: empty)"),
    )),
    "tefua": ("TEFUA", ()),
    "fifocon": ("FIFOCON", (
        _Mask("PLSIZE", hw.REG_FIFOCON_PLSIZE_MASK, _DEC3, "Payload Size"),
        _Mask("FSIZE", hw.REG_FIFOCON_FSIZE_MASK, _DEC3, "FIFO Size"),
        _Mask("TXAT", hw.REG_FIFOCON_TXAT_MASK, _DEC3, "Retransmission Attempts"),
        _Mask("TXPRI", hw.REG_FIFOCON_TXPRI_MASK, _DEC3, "Message Transmit Priority"),
        _Bit("FRESET", hw.REG_FIFOCON_FRESET, "FIFO Reset"),
        _Bit("TXREQ", hw.REG_FIFOCON_TXREQ, "Message Send Request"),
        _Bit("UINC", hw.REG_FIFOCON_UINC, "Increment Head/Tail"),
        _Bit("TXEN", hw.REG_FIFOCON_TXEN, "TX/RX FIFO Selection (0: RX, 1: TX)"),
        _Bit("RTREN", hw.REG_FIFOCON_RTREN, "Auto RTR Enable"),
        _Bit("RXTSEN", hw.REG_FIFOCON_RXTSEN, "Received Message Time Stamp Enable"),
        _Bit("TXATIE", hw.REG_FIFOCON_TXATIE, "Transmit Attempts Exhausted Interrupt Enable"),
        _Bit("RXOVIE", hw.REG_FIFOCON_RXOVIE, "Overflow Interrupt Enable"),
        _Bit("TFERFFIE", hw.REG_FIFOCON_TFERFFIE, "Transmit/Receive FIFO Empty/Full Interrupt Enable"),
        _Bit("TFHRFHIE", hw.REG_FIFOCON_TFHRFHIE, "Transmit/Receive FIFO Half Empty/Half Full Interrupt Enable"),
        _Bit("TFNRFNIE", hw.REG_FIFOCON_TFNRFNIE, "Transmit/Receive FIFO Not Full/Not Empty Interrupt Enable"),
    )),
    "fifosta": ("FIFOSTA", (
        _Mask("FIFOCI", hw.REG_FIFOSTA_FIFOCI_MASK, _DEC3, "FIFO Message Index"),
        _Bit("TXABT", hw.REG_FIFOSTA_TXABT, "Message Aborted Status (0: completed successfully, 1: aborted)"),
        _Bit("TXLARB", hw.REG_FIFOSTA_TXLARB, "Message Lost Arbitration Status"),
        _Bit("TXERR", hw.REG_FIFOSTA_TXERR, "Error Detected During Transmission"),
        _Bit("TXATIF", hw.REG_FIFOSTA_TXATIF, "Transmit Attempts Exhausted Interrupt Pending"),
        _Bit("RXOVIF", hw.REG_FIFOSTA_RXOVIF, "Receive FIFO Overflow Interrupt Flag"),
        _Bit("TFERFFIF", hw.REG_FIFOSTA_TFERFFIF, "Transmit/Receive FIFO Empty/Full Interrupt Flag"),
        _Bit("TFHRFHIF", hw.REG_FIFOSTA_TFHRFHIF, "Transmit/Receive FIFO Half Empty/Half Full Interrupt Flag"),
        _Bit("TFNRFNIF", hw.REG_FIFOSTA_TFNRFNIF, "Transmit/Receive FIFO Not Full/Not Empty Interrupt Flag"),
    )),
    "fifoua": ("FIFOUA", ()),
}

_BITMASKS = {
    "rxif": ("RXIF", "Receive FIFO Interrupt Pending"),
    "rxovif": ("RXOVIF", "Receive FIFO Overflow Interrupt Pending"),
    "txif": ("TXIF", "Transmit FIFO Interrupt Pending"),
    "txatif": ("TXATIF", "Transmit FIFO Attempt Interrupt Pending"),
    "txreq": ("TXREQ", "Message Send Request"),
}

_INTERRUPTS = (
    ("IVMI", hw.REG_INT_IVMIE, hw.REG_INT_IVMIF, "Invalid Message Interrupt"),
    ("WAKI", hw.REG_INT_WAKIE, hw.REG_INT_WAKIF, "Bus Wake Up Interrupt"),
    ("CERRI", hw.REG_INT_CERRIE, hw.REG_INT_CERRIF, "CAN Bus Error Interrupt"),
    ("SERRI", hw.REG_INT_SERRIE, hw.REG_INT_SERRIF, "System Error Interrupt"),
    ("RXOVI", hw.REG_INT_RXOVIE, hw.REG_INT_RXOVIF, "Receive FIFO Overflow Interrupt"),
    ("TXATI", hw.REG_INT_TXATIE, hw.REG_INT_TXATIF, "Transmit Attempt Interrupt"),
    ("SPICRCI", hw.REG_INT_SPICRCIE, hw.REG_INT_SPICRCIF, "SPI CRC Error Interrupt"),
    ("ECCI", hw.REG_INT_ECCIE, hw.REG_INT_ECCIF, "ECC Error Interrupt"),
    ("TEFI", hw.REG_INT_TEFIE, hw.REG_INT_TEFIF, "Transmit Event FIFO Interrupt"),
    ("MODI", hw.REG_INT_MODIE, hw.REG_INT_MODIF, "Mode Change Interrupt"),
    ("TBCI", hw.REG_INT_TBCIE, hw.REG_INT_TBCIF, "Time Base Counter Interrupt"),
    ("RXI", hw.REG_INT_RXIE, hw.REG_INT_RXIF, "Receive FIFO Interrupt"),
    ("TXI", hw.REG_INT_TXIE, hw.REG_INT_TXIF, "Transmit FIFO Interrupt"),
)

_ICODES = {
    0x4A: "Transmit Attempt Interrupt",
    0x49: "Transmit Event FIFO Interrupt",
    0x48: "Invalid Message Occurred",
    0x47: "Operation Mode Changed",
    0x46: "TBC Overflow",
    0x45: "RX/TX MAB Overflow/Underflow",
    0x44: "Address Error Interrupt",
    0x43: "Receive FIFO Overflow Interrupt",
    0x42: "Wake-up Interrupt",
    0x41: "Error Interrupt",
    0x40: "No Interrupt",
}

_MAIN_ORDER = (
    ("con", hw.REG_CON),
    ("nbtcfg", hw.REG_NBTCFG),
    ("dbtcfg", hw.REG_DBTCFG),
    ("tdc", hw.REG_TDC),
    ("tbc", hw.REG_TBC),
    ("vec", hw.REG_VEC),
    ("intf", hw.REG_INT),
    ("rxif", hw.REG_RXIF),
    ("rxovif", hw.REG_RXOVIF),
    ("txif", hw.REG_TXIF),
    ("txatif", hw.REG_TXATIF),
    ("txreq", hw.REG_TXREQ),
    ("trec", hw.REG_TREC),
    ("bdiag0", hw.REG_BDIAG0),
    ("bdiag1", hw.REG_BDIAG1),
)


def _header(title: str, label: str, addr: int, value: int) -> str:
    return f"{title}: {label}(0x{addr:03x})=0x{value:08x}\n"


def _fifo_code(code: int) -> str:
    if code == 0x40:
        return "No Interrupt"
    if code < 0x20:
        return f"FIFO {code}"
    return "Reserved"


def _format_vec(value: int, addr: int) -> str:
    rx_code = field_get(hw.REG_VEC_RXCODE_MASK, value)
    tx_code = field_get(hw.REG_VEC_TXCODE_MASK, value)
    i_code = field_get(hw.REG_VEC_ICODE_MASK, value)
    i_text = _ICODES.get(i_code) or _fifo_code(i_code)
    return (
        _header("VEC", "vec", addr, value)
        + f"\trxcode: {_fifo_code(rx_code)} (0x{rx_code:02x})\n"
        + f"\ttxcode: {_fifo_code(tx_code)} (0x{tx_code:02x})\n"
        + f"\ticode: {i_text} (0x{i_code:02x})\n"
    )


def _format_intf(value: int, addr: int) -> str:
    pending = field_get(hw.REG_INT_IF_MASK, value) & field_get(hw.REG_INT_IE_MASK, value)
    lines = [_header("INT", "intf", addr, value), "\t\tIE\tIF\tIE & IF\n"]
    for name, ie_mask, if_mask, desc in _INTERRUPTS:
        enabled = "x" if value & ie_mask else ""
        flagged = "x" if value & if_mask else ""
        both = "x" if pending & if_mask else ""
        lines.append(f"\t{name}\t{enabled}\t{flagged}\t{both}\t{desc}\n")
    return "".join(lines)


def _format_bitmask(label: str, value: int, addr: int) -> str:
    title, description = _BITMASKS[label]
    out = _header(title, label, addr, value) + f"{description}:\n"
    if not value:
        return out + "\t\t-none-\n"
    # only the low four bits are listed, as the register width in bytes
    bits = "".join(f"{i} " for i in range(4) if value & (1 << i))
    return out + "\t\t" + bits + "\n"


def _format_register(label: str, value: int, addr: int) -> str:
    if label == "vec":
        return _format_vec(value, addr)
    if label == "intf":
        return _format_intf(value, addr)
    if label in _BITMASKS:
        return _format_bitmask(label, value, addr)
    title, fields = _FIELDS[label]
    return _header(title, label, addr, value) + "".join(f.render(value) for f in fields)


def format_registers(regs: DumpRegs, regs_mcp: McpRegs) -> str:
    """Render the register dump as human-readable text."""
    out = ["-------------------- register dump --------------------\n"]

    def emit(label: str, value: int, addr: int) -> None:
        out.append(_format_register(label, value, addr))
        out.append("\n")

    for label, addr in _MAIN_ORDER:
        emit(label, getattr(regs, label), addr)
    emit("osc", regs_mcp.osc, hw.REG_OSC)
    emit("iocon", regs_mcp.iocon, hw.REG_IOCON)

    for index, fifo in enumerate(regs.fifo):
        if fifo_is_unused(fifo):
            continue
        out.append(f"----------------------- FIFO {index:2d} - ")
        if index == 0:
            out.append("TEF -----------------\n")
            emit("tefcon", regs.tefcon, hw.REG_TEFCON)
            emit("tefsta", regs.tefsta, hw.REG_TEFSTA)
            emit("tefua", regs.tefua, hw.REG_TEFUA)
        else:
            out.append("RX ------------------\n" if fifo_is_rx(fifo) else "TX ------------------\n")
            emit("fifocon", fifo.con, hw.reg_fifocon(index))
            emit("fifosta", fifo.sta, hw.reg_fifosta(index))
            emit("fifoua", fifo.ua, hw.reg_fifoua(index))

    out.append("----------------------- end ---------------------------\n")
    return "".join(out)