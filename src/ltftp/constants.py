from __future__ import annotations

RRQ = 1
WRQ = 2
DATA = 3
ACK = 4
ERROR = 5

BLOCK_SIZE = 512
BLOCK_MODULUS = 1 << 16
# Ethernet MTU minus IP (20), UDP (8) and TFTP (4) headers
MAX_DATAGRAM_SIZE = 1468

DEFAULT_PORT = 69
DEFAULT_ACK_TIMEOUT_MS = 20_000
DEFAULT_RETRANSMIT_MS = 5_000
LISTENER_POLL_MS = 50
# how often the dispatcher loop checks for shutdown
SERVER_POLL_MS = 200

ERR_NOT_DEFINED = 0
ERR_FILE_NOT_FOUND = 1
ERR_ACCESS_VIOLATION = 2
ERR_DISK_FULL = 3
ERR_ILLEGAL_OPERATION = 4
ERR_UNKNOWN_TID = 5
ERR_FILE_EXISTS = 6
ERR_NO_SUCH_USER = 7
