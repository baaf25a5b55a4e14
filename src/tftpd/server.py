from __future__ import annotations

import logging
import os
import threading
from typing import Tuple

from .config import ServerConfig
from .constants import LISTEN_POLL_MS
from .errors import IllegalOperation, send_error
from .files import FileStore
from .net import UdpEndpoint
from .packet import MalformedPacket, decode_request
from .session import Session


class TftpServer:
    """Request listener on the well-known port.

    Every valid RRQ/WRQ gets its own thread and ephemeral socket; the listener
    goes straight back to receiving. Sessions are spawned without a bound.
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self.store = FileStore(config.read_root, config.write_root)
        os.makedirs(config.write_root, exist_ok=True)
        self.udp = UdpEndpoint.listening(config.host, config.port, timeout_ms=LISTEN_POLL_MS)
        self.sessions_started = 0
        self._sessions: list[threading.Thread] = []
        self._stop = threading.Event()

    @property
    def address(self) -> Tuple[str, int]:
        return self.udp.local_address

    def serve_forever(self) -> None:
        host, port = self.address
        logging.info("listening at %s:%d for new requests", host, port)
        while not self._stop.is_set():
            try:
                raw, addr = self.udp.recvfrom()
            except TimeoutError:
                continue
            except OSError as exc:
                if self._stop.is_set():
                    break
                logging.warning("error while receiving request: %s", exc)
                continue
            self.handle_datagram(raw, addr)

    def handle_datagram(self, raw: bytes, addr: Tuple[str, int]) -> threading.Thread | None:
        try:
            request = decode_request(raw)
        except MalformedPacket as exc:
            logging.warning("rejecting datagram from %s:%d: %s", addr[0], addr[1], exc)
            err = IllegalOperation(str(exc))
            send_error(self.udp, err.code, str(err), addr=addr)
            return None

        session = Session(request, addr, self.store, self.config)
        thread = threading.Thread(
            target=session.run,
            name=f"tftp-session-{addr[0]}:{addr[1]}",
            daemon=True,
        )
        self._sessions = [t for t in self._sessions if t.is_alive()]
        self._sessions.append(thread)
        self.sessions_started += 1
        thread.start()
        return thread

    def join_sessions(self, timeout: float | None = None) -> None:
        for thread in list(self._sessions):
            thread.join(timeout)

    def shutdown(self) -> None:
        self._stop.set()

    def close(self) -> None:
        self._stop.set()
        self.udp.close()

    def __enter__(self) -> "TftpServer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
