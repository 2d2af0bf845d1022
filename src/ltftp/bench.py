from __future__ import annotations

import io
import os
import tempfile
import threading
from dataclasses import dataclass

from .client import Client
from .config import ServerConfig
from .net import Impairment, UdpEndpoint
from .server import TftpServer
from .transfer import TransferMetrics


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    bytes_transferred: int
    blocks: int
    duration_s: float
    throughput_mbps: float
    retransmits: int


def run_benchmark(
    *,
    size_bytes: int,
    loss_rate: float = 0.0,
    delay_ms: int = 0,
    ack_timeout_ms: int = 2000,
    retransmit_ms: int = 100,
) -> BenchmarkResult:
    """Serve a file of ``size_bytes`` on loopback and download it once.

    Loss and delay are applied to the server's outbound datagrams.
    """
    payload = os.urandom(size_bytes)
    finished = threading.Event()
    holder: dict[str, TransferMetrics] = {}

    def on_finished(session, metrics):
        holder["m"] = metrics
        finished.set()

    with tempfile.TemporaryDirectory() as root:
        with open(os.path.join(root, "bench.bin"), "wb") as f:
            f.write(payload)

        config = ServerConfig(
            root=root,
            read_only=True,
            ack_timeout_ms=ack_timeout_ms,
            retransmit_ms=retransmit_ms,
            impairment=Impairment(loss_rate=loss_rate, delay_ms=delay_ms),
        )
        server = TftpServer(config, on_finished=on_finished)
        listen_ep = UdpEndpoint.listening("127.0.0.1", 0, timeout_ms=100)

        def serve_runner():
            try:
                server.serve_on(listen_ep)
            finally:
                listen_ep.close()

        t = threading.Thread(target=serve_runner, daemon=True)
        t.start()

        client_ep = UdpEndpoint.sending()
        out = io.BytesIO()
        try:
            Client(client_ep, listen_ep.address, timeout_ms=retransmit_ms * 2).fetch("bench.bin", out)
            finished.wait(timeout=ack_timeout_ms / 1000.0)
        finally:
            client_ep.close()
            server.shutdown()
        t.join(timeout=5.0)

    if out.getvalue() != payload:
        raise RuntimeError("downloaded payload does not match the served file")
    if "m" not in holder:
        raise RuntimeError("server did not report the transfer as finished")

    m = holder["m"]
    duration_s = max(0.001, m.duration_s)
    return BenchmarkResult(
        bytes_transferred=m.bytes_transferred,
        blocks=m.blocks,
        duration_s=duration_s,
        throughput_mbps=(m.bytes_transferred * 8 / 1_000_000) / duration_s,
        retransmits=m.retransmits,
    )
