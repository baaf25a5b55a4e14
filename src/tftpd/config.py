from __future__ import annotations

import argparse
from dataclasses import dataclass

from .constants import DEFAULT_MAX_RETRIES, DEFAULT_PORT, DEFAULT_TIMEOUT_MS
from .net import Impairment


@dataclass(frozen=True, slots=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    read_root: str = "read"
    write_root: str = "write"
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    loss_rate: float = 0.0
    delay_ms: int = 0

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")
        if not 0.0 <= self.loss_rate <= 1.0:
            raise ValueError(f"loss_rate must be within [0, 1], got {self.loss_rate}")

    def impairment(self) -> Impairment:
        return Impairment(loss_rate=self.loss_rate, delay_ms=self.delay_ms)

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ServerConfig":
        return cls(
            host=args.host,
            port=args.port,
            read_root=args.read_root,
            write_root=args.write_root,
            timeout_ms=args.timeout_ms,
            max_retries=args.max_retries,
            loss_rate=args.loss_rate,
            delay_ms=args.delay_ms,
        )
