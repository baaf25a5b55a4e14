from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import ClassVar, Union

from .constants import BLOCK_NUMBER_MODULUS, BLOCK_SIZE, MODE_OCTET

OPCODE_STRUCT = struct.Struct("!H")
HEADER_STRUCT = struct.Struct("!HH")  # opcode, block number or error code


class Opcode(enum.IntEnum):
    RRQ = 1
    WRQ = 2
    DATA = 3
    ACK = 4
    ERROR = 5


class ErrorCode(enum.IntEnum):
    """RFC 1350 error codes."""

    NOT_DEFINED = 0
    FILE_NOT_FOUND = 1
    ACCESS_VIOLATION = 2
    DISK_FULL = 3
    ILLEGAL_OPERATION = 4
    UNKNOWN_TRANSFER_ID = 5
    FILE_EXISTS = 6
    NO_SUCH_USER = 7


class MalformedPacket(ValueError):
    """Raised when a datagram cannot be decoded into a packet."""


def next_block(block: int) -> int:
    """Block numbers are 16 bits wide: 65535 is followed by 0."""
    return (block + 1) % BLOCK_NUMBER_MODULUS


@dataclass(frozen=True, slots=True)
class Request:
    opcode: Opcode
    filename: bytes
    mode: bytes = MODE_OCTET

    @property
    def is_read(self) -> bool:
        return self.opcode == Opcode.RRQ

    @property
    def name(self) -> str:
        return self.filename.decode("ascii", "replace")

    def to_bytes(self) -> bytes:
        return OPCODE_STRUCT.pack(self.opcode) + self.filename + b"\x00" + self.mode + b"\x00"


@dataclass(frozen=True, slots=True)
class Data:
    opcode: ClassVar[Opcode] = Opcode.DATA

    block: int
    payload: bytes = b""

    @property
    def is_final(self) -> bool:
        return len(self.payload) < BLOCK_SIZE

    def to_bytes(self) -> bytes:
        if len(self.payload) > BLOCK_SIZE:
            raise ValueError(f"payload too large: {len(self.payload)}")
        return HEADER_STRUCT.pack(self.opcode, self.block) + self.payload


@dataclass(frozen=True, slots=True)
class Ack:
    opcode: ClassVar[Opcode] = Opcode.ACK

    block: int

    def to_bytes(self) -> bytes:
        return HEADER_STRUCT.pack(self.opcode, self.block)


@dataclass(frozen=True, slots=True)
class ErrorPacket:
    opcode: ClassVar[Opcode] = Opcode.ERROR

    code: int
    message: bytes = b""

    def to_bytes(self) -> bytes:
        return HEADER_STRUCT.pack(self.opcode, self.code) + self.message + b"\x00"


Packet = Union[Request, Data, Ack, ErrorPacket]


def _decode_request(opcode: Opcode, raw: bytes) -> Request:
    body = raw[OPCODE_STRUCT.size :]
    filename, sep, rest = body.partition(b"\x00")
    if not sep:
        raise MalformedPacket("request filename is not NUL-terminated")
    if not filename:
        raise MalformedPacket("request has an empty filename")
    mode = rest.partition(b"\x00")[0]
    return Request(opcode=opcode, filename=filename, mode=mode)


def decode(raw: bytes) -> Packet:
    if len(raw) < OPCODE_STRUCT.size:
        raise MalformedPacket(f"datagram too small to carry an opcode: {len(raw)} bytes")

    (value,) = OPCODE_STRUCT.unpack_from(raw)
    try:
        opcode = Opcode(value)
    except ValueError:
        raise MalformedPacket(f"unknown opcode {value}") from None

    if opcode in (Opcode.RRQ, Opcode.WRQ):
        return _decode_request(opcode, raw)

    if len(raw) < HEADER_STRUCT.size:
        raise MalformedPacket(f"{opcode.name} packet too small: {len(raw)} bytes")

    _, field = HEADER_STRUCT.unpack_from(raw)
    body = raw[HEADER_STRUCT.size :]

    if opcode == Opcode.DATA:
        if len(body) > BLOCK_SIZE:
            raise MalformedPacket(f"DATA payload too large: {len(body)} bytes")
        return Data(block=field, payload=body)
    if opcode == Opcode.ACK:
        return Ack(block=field)
    return ErrorPacket(code=field, message=body.partition(b"\x00")[0])


def decode_request(raw: bytes) -> Request:
    packet = decode(raw)
    if not isinstance(packet, Request):
        raise MalformedPacket(f"expected a read or write request, got {packet.opcode.name}")
    return packet
