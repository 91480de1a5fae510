"""Decoding of MCP2517FD/MCP2518FD register and RAM state from coredump or regmap files."""

__all__ = ["cli", "coredump", "ramdump", "regdump", "regmap", "regs"]