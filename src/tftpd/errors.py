from __future__ import annotations

import logging
from typing import Tuple

from .packet import ErrorCode, ErrorPacket


class TransferError(Exception):
    """A failure that ends a session and is reported to the peer as an ERROR packet."""

    code: ErrorCode = ErrorCode.NOT_DEFINED

    def __init__(self, message: str, code: ErrorCode | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class FileNotFound(TransferError):
    code = ErrorCode.FILE_NOT_FOUND


class AccessViolation(TransferError):
    code = ErrorCode.ACCESS_VIOLATION


class IllegalOperation(TransferError):
    code = ErrorCode.ILLEGAL_OPERATION


class TransferAborted(TransferError):
    code = ErrorCode.NOT_DEFINED


class IOFailure(TransferError):
    code = ErrorCode.NOT_DEFINED


def send_error(udp, code: int, message: str, addr: Tuple[str, int] | None = None) -> bool:
    """Best-effort ERROR packet. Over a connected endpoint unless ``addr`` is given.

    Returns False if the send failed; the failure is logged and not retried.
    """
    raw = ErrorPacket(code=int(code), message=message.encode("ascii", "replace")).to_bytes()
    try:
        if addr is None:
            udp.send(raw)
        else:
            udp.sendto(raw, addr)
    except OSError as exc:
        logging.warning("could not send error %d (%s): %s", code, message, exc)
        return False
    logging.debug("sent error %d: %s", code, message)
    return True
