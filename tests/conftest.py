from __future__ import annotations

import socket
import threading
import time

import pytest

from ltftp.config import ServerConfig
from ltftp.net import UdpEndpoint
from ltftp.packet import Packet, decode
from ltftp.server import TftpServer


class Peer:
    """Scripted client end of a transfer, driven packet by packet."""

    def __init__(self, timeout_s: float = 2.0):
        self.udp = UdpEndpoint.listening("127.0.0.1", 0, timeout_ms=int(timeout_s * 1000))

    @property
    def address(self):
        return self.udp.address

    def send(self, packet: Packet | bytes, addr) -> None:
        raw = packet if isinstance(packet, bytes) else packet.to_bytes()
        self.udp.sendto(raw, addr)

    def recv(self):
        raw, addr = self.udp.recvfrom()
        return decode(raw), addr

    def recv_raw(self):
        return self.udp.recvfrom()

    def drain(self, timeout_s: float = 0.3) -> list[bytes]:
        self.udp.sock.settimeout(timeout_s)
        out = []
        while True:
            try:
                raw, _ = self.udp.recvfrom()
            except socket.timeout:
                return out
            out.append(raw)

    def close(self) -> None:
        self.udp.close()


@pytest.fixture
def peer():
    p = Peer()
    yield p
    p.close()


@pytest.fixture
def make_server(tmp_path):
    running = []

    def start(**overrides):
        settings = dict(root=str(tmp_path), ack_timeout_ms=1000, retransmit_ms=200)
        settings.update(overrides)
        server = TftpServer(ServerConfig(**settings))
        udp = UdpEndpoint.listening("127.0.0.1", 0, timeout_ms=50)
        t = threading.Thread(target=server.serve_on, args=(udp,), daemon=True)
        t.start()
        running.append((server, udp, t))
        return server, udp.address

    yield start

    for server, udp, t in running:
        server.shutdown()
        t.join(timeout=2.0)
        udp.close()


def wait_for(predicate, timeout_s: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()
