from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

from .constants import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_MS, TFTP_PORT
from .driver import TransferMetrics, run
from .errors import TransferError
from .net import UdpTransport, open_transport_socket, resolve_endpoint
from .packet import Direction
from .session import open_session


def transfer(args: argparse.Namespace) -> TransferMetrics:
    direction = Direction(args.action)
    local = args.local or args.file

    endpoint = resolve_endpoint(args.host, args.port)
    session = open_session(direction, args.file, local)

    with session:
        sock = open_transport_socket(endpoint, timeout_ms=args.timeout_ms)
        transport = UdpTransport(sock, endpoint, max_retries=args.max_retries)
        try:
            metrics = run(session, transport.send, transport.receive)
        finally:
            transport.close()

    if transport.retransmits:
        logging.info("retransmits=%d", transport.retransmits)
    return metrics


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="minitftp", description="Minimal TFTP client (octet mode).")
    parser.add_argument("host", help="TFTP server host name or address")
    parser.add_argument("file", help="remote file name")
    parser.add_argument("action", nargs="?", default="get", choices=["get", "put"])
    parser.add_argument("--port", default=TFTP_PORT, type=int)
    parser.add_argument("--local", default=None, help="local file path (defaults to the remote name)")
    parser.add_argument("--timeout-ms", default=DEFAULT_TIMEOUT_MS, type=int, help="0 waits forever")
    parser.add_argument("--max-retries", default=DEFAULT_MAX_RETRIES, type=int, help="retransmits per timeout (needs --timeout-ms)")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--json", action="store_true", help="print a metrics summary as JSON")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")

    try:
        metrics = transfer(args)
    except (TransferError, OSError) as e:
        print(f"minitftp: {args.action} {args.file}: {e}", file=sys.stderr)
        return 1

    if args.json:
        payload = {
            "action": args.action,
            "file": args.file,
            "bytes": metrics.bytes_transferred,
            "packets_sent": metrics.packets_sent,
            "packets_received": metrics.packets_received,
            "seconds": metrics.duration_s,
            "mbps": metrics.throughput_mbps,
        }
        print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
