[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "canbus-tools"
version = "0.1.0"
description = "CAN bus utilities: SLCAN adapters, SAE J1939 addressing and an MCP251xFD chip state decoder"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "can",
    "canbus",
    "socketcan",
    "slcan",
    "j1939",
    "mcp2518fd",
    "mcp2517fd",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems :: Controller Area Network (CAN)",
    "Topic :: System :: Networking",
    "Topic :: Utilities",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mcp251xfd-dump = "canbus_tools.mcp251xfd.cli:main"
slcanpty = "canbus_tools.slcanpty:main"
slcan_attach = "canbus_tools.slcan_attach:main"
slcand = "canbus_tools.slcand:main"
testj1939 = "canbus_tools.testj1939:main"

[tool.hatch.build.targets.wheel]
packages = ["canbus_tools"]

[tool.hatch.build.targets.sdist]
include = ["canbus_tools", "tests", "README.md"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
