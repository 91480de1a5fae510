# canbus-tools

Command line tools and a small library for working with CAN buses on Linux.
Only the Python standard library is used. The socket and tty tools need a
Linux kernel with SocketCAN (and, for the SLCAN tools, the slcan line
discipline); attaching line disciplines and renaming interfaces usually
needs root.

## Installation

```sh
pip install .
```

To run the tests:

```sh
pip install ".[test]"
pytest
```

## Commands

### slcanpty

```sh
slcanpty /dev/ptmx can0
```

Bridges a pseudo-terminal speaking the ASCII SLCAN protocol to a raw CAN
socket on the named interface. When the terminal given is `/dev/ptmx`, a new
pseudo-terminal is created and the name of its slave side (such as
`/dev/pts/3`) is printed; point the SLCAN application at that device.

Frames received on the interface are written to the terminal only after the
application has sent the `O` (open) command, and no longer after `C`
(close). `Z1` appends a millisecond timestamp to each received frame. The
`V`, `v`, `N` and `F` queries get fixed answers; `S`, `s`, `U`, `m` and `M`
are acknowledged without effect; `P` and `A` are refused. The program ends
when the terminal is closed or, if standard input is selectable, when input
arrives on it.

### slcan_attach

```sh
slcan_attach -w -o -f -s6 -c /dev/ttyS1
slcan_attach /dev/ttyS1
slcan_attach -d /dev/ttyS1
slcan_attach -w -n can15 /dev/ttyS1
```

| option        | meaning                                           |
|---------------|---------------------------------------------------|
| `-o`          | send the open command `O\r`                       |
| `-l`          | send the listen-only command `L\r` (overrides -o) |
| `-c`          | send the close command `C\r` on detach            |
| `-f`          | read status flags with `F\r`                      |
| `-s <speed>`  | CAN speed code 0..8 (10 kbit/s .. 1000 kbit/s)    |
| `-b <btr>`    | bit time register value (up to 8 characters)      |
| `-d`          | only detach the line discipline                   |
| `-w`          | attach, wait for a key press, then detach         |
| `-n <name>`   | rename the created network device                 |

### slcand

```sh
slcand -o -c -f -s6 ttyUSB0
slcand -o -c -f -s6 ttyUSB0 can0
slcand -F -S 115200 -t hw -o /dev/ttyUSB0
```

Attaches the SLCAN line discipline to a tty and keeps it attached. The tty
may be given with or without the `/dev/` prefix; an optional second argument
renames the created network device. `-S` sets the UART baud rate (9600 up to
4000000, as the platform supports), `-t hw|sw` selects hardware or software
flow control, and `-o`, `-c`, `-f`, `-l`, `-s` and `-b` are as for
`slcan_attach`.

Without `-F` the process detaches from its terminal and logs to syslog. With
`-F` it stays in the foreground, prints messages as `[priority] text`, and
on SIGINT or SIGTERM restores the normal line discipline, sends `C\r` if
`-c` was given, restores the previous UART speeds and exits with
`128 + signal number`.

### testj1939

```sh
testj1939 -r -n can0
testj1939 -s16 can0:0x20 :0x30,0x12300
testj1939 -w5 -e can0:0x80
```

Exercises SAE J1939 sockets. The two positional arguments are the local and
the peer address, each `-` or `[IFACE][:[SA][,[PGN][,NAME]]]`; numbers are
decimal, or hexadecimal with `0x`, or octal with a leading `0`.

| option      | meaning                                              |
|-------------|------------------------------------------------------|
| `-v`        | print the socket calls made                          |
| `-s[LEN]`   | send LEN (default 8, at most 128) bytes of test data |
| `-r`        | receive and print packets                            |
| `-e`        | echo received packets back to their sender           |
| `-c`        | connect to the peer address                          |
| `-p PRIO`   | set the send priority                                |
| `-P`        | promiscuous mode                                     |
| `-b`        | bind with SA+1, then re-bind with the actual SA      |
| `-B`        | allow broadcast                                      |
| `-o`        | do not bind                                          |
| `-n`        | print 64-bit NAMEs of senders                        |
| `-w[TIME]`  | exit after TIME (default 1) seconds                  |

Received packets are printed as source address, PGN and payload, eight
bytes per line.

### mcp251xfd-dump

```sh
mcp251xfd-dump /var/log/devcoredump-19700101-234200.dump
mcp251xfd-dump /sys/kernel/debug/regmap/spi1.0-crc/registers
mcp251xfd-dump spi0.0
```

Decodes the register set and message RAM of a Microchip MCP2517FD/MCP2518FD
controller. The file is first read as a device coredump and, failing that,
as a regmap register file of `reg: value` lines. A bare name such as
`spi0.0` is looked up under `/sys/kernel/debug/regmap/`, first literally and
then with a `-crc` suffix. `-h` or `--help` prints the usage.

## Library use

Classical CAN frames in their raw socket layout:

```python
from canbus_tools.can import CanFrame, can_dlc2len

frame = CanFrame(can_id=0x123, data=b"\xaa\xbb")
assert CanFrame.unpack(frame.pack()) == frame
can_dlc2len(9)  # 12
```

J1939 address strings (`str2addr` reads hexadecimal fields, `parse_canaddr`
the command-line form used by `testj1939`):

```python
from canbus_tools.j1939addr import addr2str, parse_canaddr, str2addr

address = str2addr("80,0ef00")
print(addr2str(address))            # 80,0ef00
peer = parse_canaddr(":0x30,0x12300")
```

SLCAN translation without any terminal or socket:

```python
from canbus_tools.slcanpty import SlcanTranslator, encode_frame

translator = SlcanTranslator()
reply, frames = translator.feed(b"t1232AABB\r")   # b"\r", [CanFrame(...)]
encode_frame(frames[0])                           # b"t1232AABB\r"
```

Decoding an MCP251xFD state in a program:

```python
from canbus_tools.mcp251xfd.cli import load_state
from canbus_tools.mcp251xfd.ramdump import dump

state = load_state("spi0.0")
print(dump(state))
```

## What this package does not do

There are no general tools here for dumping, sending, generating, logging
or replaying CAN traffic, and no CAN FD frame type: `CanFrame` covers
classical frames only, and `slcanpty` carries classical frames only.