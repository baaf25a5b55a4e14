from __future__ import annotations

import enum
import errno
import logging
import time
from dataclasses import dataclass, field
from typing import BinaryIO

from .constants import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_MS
from .errors import IllegalOperation, IOFailure, TransferAborted, TransferError, send_error
from .net import UdpEndpoint
from .packet import Ack, Data, ErrorCode, MalformedPacket, decode, next_block


class TransferState(enum.Enum):
    SENDING = "sending"
    AWAITING_ACK = "awaiting_ack"
    AWAITING_DATA = "awaiting_data"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class TransferStats:
    blocks: int = 0
    bytes_transferred: int = 0
    packets_sent: int = 0
    timeouts: int = 0
    retransmits: int = 0
    duplicates: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_transferred * 8 / 1_000_000) / self.duration_s


@dataclass(slots=True)
class WriteTransfer:
    """Server-receives-file state machine.

    Acknowledges block 0, then accepts DATA blocks strictly in order. A
    retransmission of the last acknowledged block is re-acknowledged but not
    written again. Silence is bounded: after ``max_retries`` consecutive
    timeouts (each one re-sending the last ACK) the transfer is aborted.
    """

    udp: UdpEndpoint
    out: BinaryIO
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    state: TransferState = TransferState.AWAITING_DATA
    error: TransferError | None = None
    stats: TransferStats = field(default_factory=TransferStats)

    def run(self) -> TransferState:
        try:
            self._receive_file()
        except TransferError as exc:
            self.state = TransferState.FAILED
            self.error = exc
            send_error(self.udp, exc.code, str(exc))
        self.stats.end_ts = time.monotonic()
        return self.state

    def _deadline(self) -> float:
        return time.monotonic() + self.timeout_ms / 1000.0

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

    def _append(self, payload: bytes) -> None:
        try:
            self.out.write(payload)
        except OSError as exc:
            code = ErrorCode.DISK_FULL if exc.errno == errno.ENOSPC else None
            raise IOFailure(f"write failed: {exc.strerror}", code) from exc

    def _close(self) -> None:
        try:
            self.out.close()
        except OSError as exc:
            code = ErrorCode.DISK_FULL if exc.errno == errno.ENOSPC else None
            raise IOFailure(f"close failed: {exc.strerror}", code) from exc

    def _receive_file(self) -> None:
        expected = 1
        last_block = 0
        last_ack = Ack(0).to_bytes()
        retries = 0

        self.state = TransferState.AWAITING_DATA
        self._send(last_ack)
        deadline = self._deadline()

        while True:
            raw = self._recv(deadline)
            if raw is None:
                self.stats.timeouts += 1
                retries += 1
                if retries >= self.max_retries:
                    raise TransferAborted(f"no DATA block {expected} after {retries} timeouts")
                logging.debug("timeout; expected block=%d retry=%d", expected, retries)
                self._send(last_ack)
                self.stats.retransmits += 1
                deadline = self._deadline()
                continue

            try:
                packet = decode(raw)
            except MalformedPacket as exc:
                raise IllegalOperation(f"malformed packet: {exc}") from exc

            if not isinstance(packet, Data):
                raise IllegalOperation(f"expected DATA block {expected}, got {packet.opcode.name}")

            if packet.block == expected:
                self._append(packet.payload)
                last_block = expected
                last_ack = Ack(expected).to_bytes()
                self._send(last_ack)
                self.stats.blocks += 1
                self.stats.bytes_transferred += len(packet.payload)
                if packet.is_final:
                    break
                expected = next_block(expected)
                retries = 0
                deadline = self._deadline()
            elif packet.block == last_block:
                # Our ACK was lost and the client resent the block.
                logging.debug("duplicate block=%d; re-ack", packet.block)
                self.stats.duplicates += 1
                self._send(last_ack)
            else:
                raise IllegalOperation(f"unexpected block {packet.block}, expected {expected}")

        self._close()
        self.state = TransferState.DONE
