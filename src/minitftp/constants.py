from __future__ import annotations

OPCODE_FORMAT = "!H"
HEADER_FORMAT = "!HH"  # opcode, block

RRQ = 1
WRQ = 2
DATA = 3
ACK = 4
ERROR = 5

BLOCK_SIZE = 512
MAX_BLOCK = 0xFFFF
MODE = b"octet"

TFTP_PORT = 69
RECV_BUFSIZE = 65535

DEFAULT_TIMEOUT_MS = 0  # 0 blocks forever
DEFAULT_MAX_RETRIES = 0
