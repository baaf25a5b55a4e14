from __future__ import annotations

import io

import pytest

from tftpd.errors import IOFailure, TransferAborted
from tftpd.packet import Ack, Data, ErrorCode, ErrorPacket, decode
from tftpd.receiver import TransferState
from tftpd.sender import ReadTransfer


class FailingReader(io.BytesIO):
    def read(self, size=-1):
        raise OSError(5, "Input/output error")


def test_ten_byte_file(scripted):
    udp = scripted(Ack(1))
    t = ReadTransfer(udp, io.BytesIO(b"0123456789"))
    assert t.run() is TransferState.DONE
    assert udp.packets() == [Data(1, b"0123456789")]
    assert t.stats.blocks == 1


@pytest.mark.parametrize("size", [0, 10, 511, 512, 1024, 1300])
def test_block_count(scripted, size):
    content = bytes(i % 251 for i in range(size))
    n_blocks = size // 512 + 1
    udp = scripted(*(Ack(b) for b in range(1, n_blocks + 1)))

    t = ReadTransfer(udp, io.BytesIO(content))
    assert t.run() is TransferState.DONE

    sent = udp.packets()
    assert [p.block for p in sent] == list(range(1, n_blocks + 1))
    assert len(sent[-1].payload) == size % 512
    assert all(len(p.payload) == 512 for p in sent[:-1])
    assert b"".join(p.payload for p in sent) == content
    assert not udp.script


def test_empty_file_sends_one_empty_block(scripted):
    udp = scripted(Ack(1))
    assert ReadTransfer(udp, io.BytesIO(b"")).run() is TransferState.DONE
    assert udp.packets() == [Data(1, b"")]


def test_retry_exhaustion(scripted):
    udp = scripted()
    t = ReadTransfer(udp, io.BytesIO(b"abc"), timeout_ms=10, max_retries=5)
    assert t.run() is TransferState.FAILED

    sent = udp.packets()
    assert sent[:5] == [Data(1, b"abc")] * 5
    assert isinstance(sent[5], ErrorPacket)
    assert len(sent) == 6
    assert t.stats.timeouts == 5
    assert t.stats.retransmits == 4
    assert isinstance(t.error, TransferAborted)


def test_timeout_then_ack_resends_same_block(scripted):
    udp = scripted(None, Ack(1))
    t = ReadTransfer(udp, io.BytesIO(b"abc"))
    assert t.run() is TransferState.DONE
    assert udp.packets() == [Data(1, b"abc"), Data(1, b"abc")]
    assert t.stats.retransmits == 1


def test_stray_packets_do_not_reset_retries(scripted):
    udp = scripted(None, Ack(7), b"\x00", Data(1, b"x"), None)
    t = ReadTransfer(udp, io.BytesIO(b"abc"), max_retries=3)
    assert t.run() is TransferState.FAILED
    data_sent = [p for p in udp.packets() if isinstance(p, Data)]
    assert len(data_sent) == 3
    assert t.stats.timeouts == 3


def test_duplicate_ack_is_ignored(scripted):
    content = b"x" * 1024
    udp = scripted(Ack(1), Ack(1), Ack(2), Ack(3))
    t = ReadTransfer(udp, io.BytesIO(content))
    assert t.run() is TransferState.DONE
    assert [p.block for p in udp.packets()] == [1, 2, 3]
    assert t.stats.retransmits == 0


def test_read_error_aborts(scripted):
    udp = scripted()
    t = ReadTransfer(udp, FailingReader())
    assert t.run() is TransferState.FAILED
    assert isinstance(t.error, IOFailure)
    sent = udp.packets()
    assert len(sent) == 1
    assert isinstance(sent[0], ErrorPacket)


def test_socket_error_aborts(broken_endpoint):
    t = ReadTransfer(broken_endpoint, io.BytesIO(b"abc"))
    assert t.run() is TransferState.FAILED
    assert isinstance(t.error, TransferAborted)
    assert t.error.code == ErrorCode.NOT_DEFINED


def test_stray_packets_keep_the_deadline(scripted):
    udp = scripted(Ack(7), b"\x00", Data(1, b"x"), Ack(1))
    t = ReadTransfer(udp, io.BytesIO(b"abc"))
    assert t.run() is TransferState.DONE
    assert len(udp.deadlines) == 4
    assert len(set(udp.deadlines)) == 1


def test_timeout_starts_a_new_deadline(scripted):
    udp = scripted(None, Ack(7), Ack(1))
    t = ReadTransfer(udp, io.BytesIO(b"abc"))
    assert t.run() is TransferState.DONE
    first, second, third = udp.deadlines
    assert second >= first
    assert third == second


def test_block_numbers_wrap_past_65535(scripted):
    # 65537 full blocks plus a 1-byte final block: 1..65535, 0, 1, 2
    n_blocks = 65538
    content = b"\xab" * (512 * (n_blocks - 1) + 1)
    udp = scripted(*(Ack(b % 65536) for b in range(1, n_blocks + 1)))

    t = ReadTransfer(udp, io.BytesIO(content))
    assert t.run() is TransferState.DONE

    assert len(udp.sent) == n_blocks
    around_wrap = [decode(raw).block for raw in udp.sent[65534:65537]]
    assert around_wrap == [65535, 0, 1]
    last = decode(udp.sent[-1])
    assert last == Data(2, b"\xab")
    assert t.stats.bytes_transferred == len(content)
