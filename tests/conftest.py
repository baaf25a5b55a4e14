from __future__ import annotations

import socket
import threading
from collections import deque
from typing import Tuple

import pytest

from tftpd.config import ServerConfig
from tftpd.constants import BLOCK_SIZE, RECV_BUFSIZE
from tftpd.packet import Ack, Data, ErrorPacket, Opcode, Request, decode
from tftpd.server import TftpServer


class ScriptedEndpoint:
    """Stands in for a connected UdpEndpoint. ``None`` in the script (or an
    exhausted script) behaves like a receive timeout."""

    def __init__(self, script=()):
        self.script = deque(script)
        self.sent: list[bytes] = []
        self.deadlines: list[float] = []

    def send(self, data: bytes) -> None:
        self.sent.append(data)

    def recv_until(self, deadline: float) -> bytes | None:
        self.deadlines.append(deadline)
        if not self.script:
            return None
        return self.script.popleft()

    def packets(self) -> list:
        return [decode(raw) for raw in self.sent]


class BrokenEndpoint(ScriptedEndpoint):
    def send(self, data: bytes) -> None:
        raise OSError("network is unreachable")


@pytest.fixture
def scripted():
    def make(*replies):
        return ScriptedEndpoint(r.to_bytes() if hasattr(r, "to_bytes") else r for r in replies)

    return make


@pytest.fixture
def broken_endpoint():
    return BrokenEndpoint()


class ClientError(Exception):
    def __init__(self, packet: ErrorPacket):
        super().__init__(f"error {packet.code}: {packet.message!r}")
        self.packet = packet


def tftp_get(server: Tuple[str, int], filename: bytes, timeout: float = 2.0) -> list[Data]:
    blocks: list[Data] = []
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.settimeout(timeout)
        sock.sendto(Request(Opcode.RRQ, filename).to_bytes(), server)
        expected = 1
        while True:
            raw, peer = sock.recvfrom(RECV_BUFSIZE)
            packet = decode(raw)
            if isinstance(packet, ErrorPacket):
                raise ClientError(packet)
            assert isinstance(packet, Data)
            sock.sendto(Ack(packet.block).to_bytes(), peer)
            if packet.block != expected:
                continue
            blocks.append(packet)
            expected += 1
            if packet.is_final:
                return blocks


def tftp_put(server: Tuple[str, int], filename: bytes, content: bytes, timeout: float = 2.0) -> list[Ack]:
    chunks = [content[i : i + BLOCK_SIZE] for i in range(0, len(content), BLOCK_SIZE)]
    if len(content) % BLOCK_SIZE == 0:
        chunks.append(b"")

    acks: list[Ack] = []
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.settimeout(timeout)
        sock.sendto(Request(Opcode.WRQ, filename).to_bytes(), server)
        raw, peer = sock.recvfrom(RECV_BUFSIZE)
        for block, chunk in enumerate(chunks, start=1):
            packet = decode(raw)
            if isinstance(packet, ErrorPacket):
                raise ClientError(packet)
            assert packet == Ack(block - 1)
            acks.append(packet)
            sock.sendto(Data(block, chunk).to_bytes(), peer)
            raw, _ = sock.recvfrom(RECV_BUFSIZE)
        packet = decode(raw)
        if isinstance(packet, ErrorPacket):
            raise ClientError(packet)
        acks.append(packet)
    return acks


class TftpTestClient:
    Error = ClientError
    get = staticmethod(tftp_get)
    put = staticmethod(tftp_put)


@pytest.fixture
def client():
    return TftpTestClient


@pytest.fixture
def make_server(tmp_path):
    servers: list[tuple[TftpServer, threading.Thread]] = []

    def start(**overrides) -> TftpServer:
        options = dict(
            host="127.0.0.1",
            port=0,
            read_root=str(tmp_path / "read"),
            write_root=str(tmp_path / "write"),
            timeout_ms=500,
            max_retries=3,
        )
        options.update(overrides)
        (tmp_path / "read").mkdir(exist_ok=True)
        srv = TftpServer(ServerConfig(**options))
        thread = threading.Thread(target=srv.serve_forever, daemon=True)
        thread.start()
        servers.append((srv, thread))
        return srv

    yield start

    for srv, thread in servers:
        srv.shutdown()
        thread.join(2)
        srv.join_sessions(5)
        srv.close()
