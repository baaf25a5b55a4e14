from __future__ import annotations

import argparse
import logging

from .config import ServerConfig
from .constants import DEFAULT_MAX_RETRIES, DEFAULT_PORT, DEFAULT_TIMEOUT_MS
from .server import TftpServer


def cmd_serve(args: argparse.Namespace) -> int:
    config = ServerConfig.from_args(args)
    with TftpServer(config) as server:
        logging.info("read_root=%s write_root=%s", config.read_root, config.write_root)
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            logging.info("interrupted; shutting down")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tftpd", description="TFTP server (RFC 1350, octet mode).")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve", help="serve files from --read-root and accept uploads into --write-root")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve.add_argument("--read-root", default="read")
    serve.add_argument("--write-root", default="write")
    serve.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS)
    serve.add_argument("--max-retries", type=int, default=DEFAULT_MAX_RETRIES)
    serve.add_argument("--loss-rate", type=float, default=0.0, help="simulate packet loss on transfer sockets")
    serve.add_argument("--delay-ms", type=int, default=0, help="simulate delay on transfer sockets")
    serve.set_defaults(func=cmd_serve)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
