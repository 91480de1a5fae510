"""CAN bus utilities: SLCAN adapters, J1939 addressing and MCP251xFD decoding."""

__version__ = "0.1.0"