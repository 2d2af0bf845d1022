from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from typing import BinaryIO

from .constants import BLOCK_SIZE, DEFAULT_RETRANSMIT_MS, MAX_DATAGRAM_SIZE
from .errors import AckTimeoutError, PeerError, ProtocolError
from .net import Address, UdpEndpoint
from .packet import Ack, Data, Error, Packet, PacketFormatError, Request, decode, next_block
from .transfer import TransferMetrics

log = logging.getLogger(__name__)


@dataclass(slots=True)
class Client:
    """Minimal client for both transfer directions.

    The server answers from a fresh port; the first reply fixes that port as
    the transfer peer and datagrams from anywhere else are ignored.
    """

    udp: UdpEndpoint
    server: Address
    timeout_ms: int = DEFAULT_RETRANSMIT_MS
    max_retries: int = 5

    def __post_init__(self) -> None:
        self.udp.sock.settimeout(self.timeout_ms / 1000.0)

    def _exchange(self, last: bytes, dest: Address, peer: Address | None) -> tuple[Packet, Address]:
        """Wait for the next packet from ``peer``, re-sending ``last`` on timeouts."""
        retries = 0
        while True:
            try:
                raw, addr = self.udp.recvfrom(MAX_DATAGRAM_SIZE)
            except socket.timeout:
                retries += 1
                if retries > self.max_retries:
                    raise AckTimeoutError(f"no reply from {dest} after {self.max_retries} retries")
                log.debug("timeout; resend to %s retry=%d", dest, retries)
                self.udp.sendto(last, dest)
                continue

            if peer is not None and addr != peer:
                log.debug("ignoring datagram from unknown peer %s", addr)
                continue
            try:
                return decode(raw), addr
            except PacketFormatError as exc:
                raise ProtocolError(f"bad packet from {addr}: {exc}") from exc

    def fetch(self, filename: str, out: BinaryIO) -> TransferMetrics:
        metrics = TransferMetrics()
        last = Request.read(filename).to_bytes()
        dest, peer = self.server, None
        expected = 1

        self.udp.sendto(last, dest)
        metrics.packets_sent += 1
        while True:
            pkt, addr = self._exchange(last, dest, peer)
            match pkt:
                case Data(block=block, payload=payload):
                    dest = peer = addr
                    fresh = block == expected
                    if fresh:
                        out.write(payload)
                        metrics.blocks += 1
                        metrics.bytes_transferred += len(payload)
                        expected = next_block(expected)
                    # duplicates are re-acked so the server can move on
                    last = Ack(block).to_bytes()
                    self.udp.sendto(last, dest)
                    metrics.packets_sent += 1
                    if fresh and len(payload) < BLOCK_SIZE:
                        break
                case Error(code=code, message=message):
                    raise PeerError(code, message)
                case _:
                    raise ProtocolError(f"unexpected {pkt.opcode.name} from {addr}")

        out.flush()
        metrics.end_ts = time.monotonic()
        return metrics

    def store(self, filename: str, src: BinaryIO) -> TransferMetrics:
        metrics = TransferMetrics()
        last = Request.write(filename).to_bytes()
        dest, peer = self.server, None
        block = 0
        done = False

        self.udp.sendto(last, dest)
        metrics.packets_sent += 1
        while True:
            pkt, addr = self._exchange(last, dest, peer)
            match pkt:
                case Ack(block=acked) if acked == block:
                    dest = peer = addr
                    if done:
                        break
                    chunk = src.read(BLOCK_SIZE)
                    block = next_block(block)
                    done = len(chunk) < BLOCK_SIZE
                    last = Data(block, chunk).to_bytes()
                    self.udp.sendto(last, dest)
                    metrics.packets_sent += 1
                    metrics.blocks += 1
                    metrics.bytes_transferred += len(chunk)
                case Ack():
                    continue
                case Error(code=code, message=message):
                    raise PeerError(code, message)
                case _:
                    raise ProtocolError(f"unexpected {pkt.opcode.name} from {addr}")

        metrics.end_ts = time.monotonic()
        return metrics
