from __future__ import annotations

DEFAULT_PORT = 4970

BLOCK_SIZE = 512
HEADER_SIZE = 4
MAX_DATAGRAM = HEADER_SIZE + BLOCK_SIZE
RECV_BUFSIZE = 65535

BLOCK_NUMBER_MODULUS = 1 << 16

MODE_OCTET = b"octet"

DEFAULT_TIMEOUT_MS = 5000
DEFAULT_MAX_RETRIES = 5
LISTEN_POLL_MS = 200
