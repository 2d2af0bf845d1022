from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict

from .bench import run_benchmark
from .client import Client
from .config import ServerConfig
from .constants import DEFAULT_ACK_TIMEOUT_MS, DEFAULT_PORT, DEFAULT_RETRANSMIT_MS, MAX_DATAGRAM_SIZE
from .errors import TransferError
from .net import Impairment, UdpEndpoint
from .server import TftpServer

log = logging.getLogger(__name__)


def cmd_serve(args: argparse.Namespace) -> int:
    config = ServerConfig(
        root=args.root,
        read_only=args.read_only,
        ack_timeout_ms=args.ack_timeout_ms,
        retransmit_ms=args.retransmit_ms,
        max_datagram_size=args.max_datagram_size,
        send_errors=not args.silent_errors,
        impairment=Impairment(args.loss_rate, args.delay_ms),
    )
    server = TftpServer(config)
    try:
        server.serve(args.host, args.port)
    except KeyboardInterrupt:
        server.shutdown()
    return 0


def _client(args: argparse.Namespace) -> Client:
    udp = UdpEndpoint.sending()
    return Client(udp, (args.host, args.port), timeout_ms=args.retransmit_ms)


def _report(args: argparse.Namespace, role: str, metrics) -> None:
    payload = {
        "role": role,
        "blocks": metrics.blocks,
        "bytes": metrics.bytes_transferred,
        "seconds": metrics.duration_s,
        "mbps": metrics.throughput_mbps,
    }
    print(json.dumps(payload, indent=2) if args.json else payload)


def cmd_get(args: argparse.Namespace) -> int:
    client = _client(args)
    try:
        with open(args.out or args.filename, "wb") as out:
            metrics = client.fetch(args.filename, out)
    except TransferError as exc:
        log.error("get %r failed: %s", args.filename, exc)
        return 1
    finally:
        client.udp.close()
    _report(args, "get", metrics)
    return 0


def cmd_put(args: argparse.Namespace) -> int:
    client = _client(args)
    try:
        with open(args.file, "rb") as src:
            metrics = client.store(args.remote or args.file, src)
    except TransferError as exc:
        log.error("put %r failed: %s", args.file, exc)
        return 1
    finally:
        client.udp.close()
    _report(args, "put", metrics)
    return 0


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(
        size_bytes=args.size_bytes,
        loss_rate=args.loss_rate,
        delay_ms=args.delay_ms,
        ack_timeout_ms=args.ack_timeout_ms,
        retransmit_ms=args.retransmit_ms,
    )
    payload = {"role": "bench", **asdict(r)}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ltftp", description="Lockstep TFTP server and client.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser, ack_timeout_ms: int, retransmit_ms: int) -> None:
        x.add_argument("--ack-timeout-ms", type=int, default=ack_timeout_ms)
        x.add_argument("--retransmit-ms", type=int, default=retransmit_ms)
        x.add_argument("--json", action="store_true")

    serve = sub.add_parser("serve", help="serve files from a directory")
    add_common(serve, DEFAULT_ACK_TIMEOUT_MS, DEFAULT_RETRANSMIT_MS)
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve.add_argument("--root", default=".")
    serve.add_argument("--read-only", action="store_true")
    serve.add_argument("--max-datagram-size", type=int, default=MAX_DATAGRAM_SIZE)
    serve.add_argument("--silent-errors", action="store_true", help="never send ERROR packets to clients")
    serve.add_argument("--loss-rate", type=float, default=0.0, help="simulate outbound packet loss")
    serve.add_argument("--delay-ms", type=int, default=0, help="simulate outbound send delay")
    serve.set_defaults(func=cmd_serve)

    get = sub.add_parser("get", help="download a file")
    add_common(get, DEFAULT_ACK_TIMEOUT_MS, DEFAULT_RETRANSMIT_MS)
    get.add_argument("--host", required=True)
    get.add_argument("--port", type=int, default=DEFAULT_PORT)
    get.add_argument("--out", default=None)
    get.add_argument("filename")
    get.set_defaults(func=cmd_get)

    put = sub.add_parser("put", help="upload a file")
    add_common(put, DEFAULT_ACK_TIMEOUT_MS, DEFAULT_RETRANSMIT_MS)
    put.add_argument("--host", required=True)
    put.add_argument("--port", type=int, default=DEFAULT_PORT)
    put.add_argument("--remote", default=None)
    put.add_argument("file")
    put.set_defaults(func=cmd_put)

    bench = sub.add_parser("bench", help="loopback benchmark of one download")
    add_common(bench, 2000, 100)
    bench.add_argument("--size-bytes", type=int, default=5_000_000)
    bench.add_argument("--loss-rate", type=float, default=0.0)
    bench.add_argument("--delay-ms", type=int, default=0)
    bench.set_defaults(func=cmd_bench)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
