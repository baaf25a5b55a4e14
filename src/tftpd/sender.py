from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import BinaryIO

from .constants import BLOCK_SIZE, DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_MS
from .errors import IOFailure, TransferAborted, TransferError, send_error
from .net import UdpEndpoint
from .packet import Ack, Data, MalformedPacket, decode, next_block
from .receiver import TransferState, TransferStats


@dataclass(slots=True)
class ReadTransfer:
    """Server-sends-file state machine (stop-and-wait, one block in flight).

    The last block is the first one shorter than ``BLOCK_SIZE``; a file whose
    length is a multiple of the block size ends with an empty block.
    """

    udp: UdpEndpoint
    f: BinaryIO
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    state: TransferState = TransferState.SENDING
    error: TransferError | None = None
    stats: TransferStats = field(default_factory=TransferStats)

    def run(self) -> TransferState:
        try:
            self._send_file()
        except TransferError as exc:
            self.state = TransferState.FAILED
            self.error = exc
            send_error(self.udp, exc.code, str(exc))
        self.stats.end_ts = time.monotonic()
        return self.state

    def _read_chunk(self) -> bytes:
        try:
            return self.f.read(BLOCK_SIZE)
        except OSError as exc:
            raise IOFailure(f"read failed: {exc.strerror}") from exc

    def _send(self, raw: bytes) -> None:
        try:
            self.udp.send(raw)
        except OSError as exc:
            raise TransferAborted(f"send failed: {exc}") from exc
        self.stats.packets_sent += 1

    def _recv(self, deadline: float) -> bytes | None:
        try:
            return self.udp.recv_until(deadline)
        except OSError as exc:
            raise TransferAborted(f"receive failed: {exc}") from exc

    def _send_file(self) -> None:
        block = 1
        while True:
            self.state = TransferState.SENDING
            chunk = self._read_chunk()
            self._send_block(Data(block=block, payload=chunk))
            self.stats.blocks += 1
            self.stats.bytes_transferred += len(chunk)
            if len(chunk) < BLOCK_SIZE:
                break
            block = next_block(block)

        self.state = TransferState.DONE

    def _send_block(self, frame: Data) -> None:
        raw = frame.to_bytes()
        retries = 0

        self._send(raw)
        self.state = TransferState.AWAITING_ACK
        deadline = time.monotonic() + self.timeout_ms / 1000.0

        while True:
            reply = self._recv(deadline)
            if reply is None:
                self.stats.timeouts += 1
                retries += 1
                if retries >= self.max_retries:
                    raise TransferAborted(f"no ACK for block {frame.block} after {retries} timeouts")
                logging.debug("timeout; block=%d retry=%d", frame.block, retries)
                self._send(raw)
                self.stats.retransmits += 1
                deadline = time.monotonic() + self.timeout_ms / 1000.0
                continue

            try:
                packet = decode(reply)
            except MalformedPacket as exc:
                logging.debug("discarding malformed packet while awaiting ack %d: %s", frame.block, exc)
                continue

            if isinstance(packet, Ack) and packet.block == frame.block:
                return

            logging.debug("discarding %s while awaiting ack %d", packet, frame.block)
