from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import BinaryIO, Tuple, Union

from .config import ServerConfig
from .constants import MODE_OCTET
from .errors import TransferError, send_error
from .files import FileStore
from .net import UdpEndpoint
from .packet import Request
from .receiver import TransferState, WriteTransfer
from .sender import ReadTransfer


@dataclass(slots=True)
class Session:
    """One client's transfer, from opening the file to releasing the socket."""

    request: Request
    client: Tuple[str, int]
    store: FileStore
    config: ServerConfig

    def run(self) -> TransferState:
        try:
            udp = UdpEndpoint.connected(self.client, host=self.config.host, impairment=self.config.impairment())
        except OSError as exc:
            host, port = self.client
            logging.warning("%s for %s:%d failed: cannot open transfer socket: %s", self.request.name, host, port, exc)
            return TransferState.FAILED
        try:
            return self._serve(udp)
        finally:
            udp.close()

    def _serve(self, udp: UdpEndpoint) -> TransferState:
        kind = "Read" if self.request.is_read else "Write"
        host, port = self.client
        logging.info(
            "%s request for %s from %s:%d using port %d",
            kind,
            self.request.name,
            host,
            port,
            udp.local_address[1],
        )
        if self.request.mode.lower() != MODE_OCTET:
            logging.debug("mode %r requested; transferring raw bytes", self.request.mode)

        try:
            f = self._open()
        except TransferError as exc:
            logging.warning("%s %s for %s:%d refused: %s", kind, self.request.name, host, port, exc)
            send_error(udp, exc.code, str(exc))
            return TransferState.FAILED

        with f:
            engine = self._engine(udp, f)
            state = engine.run()

        stats = engine.stats
        if state is TransferState.DONE:
            logging.info(
                "%s %s for %s:%d done; blocks=%d bytes=%d retransmits=%d duplicates=%d seconds=%.3f",
                kind,
                self.request.name,
                host,
                port,
                stats.blocks,
                stats.bytes_transferred,
                stats.retransmits,
                stats.duplicates,
                stats.duration_s,
            )
        else:
            logging.warning(
                "%s %s for %s:%d failed after %d blocks: %s",
                kind,
                self.request.name,
                host,
                port,
                stats.blocks,
                engine.error,
            )
        return state

    def _open(self) -> BinaryIO:
        if self.request.is_read:
            return self.store.open_for_read(self.request.filename)
        return self.store.open_for_write(self.request.filename)

    def _engine(self, udp: UdpEndpoint, f: BinaryIO) -> Union[ReadTransfer, WriteTransfer]:
        if self.request.is_read:
            return ReadTransfer(udp, f, timeout_ms=self.config.timeout_ms, max_retries=self.config.max_retries)
        return WriteTransfer(udp, f, timeout_ms=self.config.timeout_ms, max_retries=self.config.max_retries)
