"""Lockstep block transfer over a peer-connected UDP socket.

Every outbound packet that expects an answer goes through
:func:`send_and_await`: the packet is written, a listener thread reads the
socket for the matching answer, and the calling thread races that answer
against a fixed retransmit interval and an overall deadline.

Per packet the state machine is::

    Sent -> Awaiting -> Acked | TimedOut | ProtocolError

with Awaiting looping on itself for every retransmit and for every answer
carrying the wrong block number.
"""
from __future__ import annotations

import logging
import socket
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import BinaryIO

from .config import ServerConfig
from .constants import BLOCK_SIZE, LISTENER_POLL_MS
from .errors import (
    AckTimeoutError,
    PeerError,
    ProtocolError,
    StorageError,
    TransferError,
    TransportError,
)
from .net import Address, UdpEndpoint
from .packet import Ack, Data, Error, Opcode, Packet, PacketFormatError, Request, decode, next_block
from .storage import DirectoryStorage

log = logging.getLogger(__name__)


@dataclass(slots=True)
class TransferMetrics:
    blocks: int = 0
    bytes_transferred: int = 0
    packets_sent: int = 0
    retransmits: int = 0
    timeouts: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_transferred * 8 / 1_000_000) / self.duration_s


def _write(udp: UdpEndpoint, raw: bytes, metrics: TransferMetrics) -> None:
    try:
        udp.send(raw)
    except OSError as exc:
        raise TransportError(f"send failed: {exc}") from exc
    metrics.packets_sent += 1


def _listen(
    udp: UdpEndpoint,
    opcode: Opcode,
    block: int,
    bufsize: int,
    outcome: Future,
    stop: threading.Event,
) -> None:
    """Read the socket until a packet of ``opcode`` numbered ``block`` arrives.

    Resolves ``outcome`` exactly once, unless ``stop`` is set first.
    """
    while not stop.is_set():
        try:
            raw = udp.recv(bufsize)
        except socket.timeout:
            continue
        except OSError as exc:
            if not stop.is_set():
                outcome.set_exception(TransportError(f"receive failed: {exc}"))
            return

        try:
            pkt = decode(raw)
        except PacketFormatError as exc:
            outcome.set_exception(ProtocolError(f"undecodable datagram: {exc}"))
            return

        match pkt:
            case Ack(block=got) | Data(block=got) if pkt.opcode == opcode:
                if got != block:
                    log.debug("got %s(%d) but expected %s(%d)", opcode.name, got, opcode.name, block)
                    continue
                outcome.set_result(pkt)
                return
            case Error(code=code, message=message):
                outcome.set_exception(PeerError(code, message))
                return
            case _:
                outcome.set_exception(
                    ProtocolError(f"unexpected {pkt.opcode.name} while awaiting {opcode.name}({block})")
                )
                return


def send_and_await(
    udp: UdpEndpoint,
    packet: Packet,
    expect: Opcode,
    block: int,
    config: ServerConfig,
    metrics: TransferMetrics,
) -> Packet:
    """Send ``packet`` and wait for ``expect(block)`` from the peer.

    ``packet`` is re-sent unchanged every ``config.retransmit_ms`` until the
    answer arrives or ``config.ack_timeout_ms`` elapses. Answers with another
    block number are ignored; anything else ends the wait with ProtocolError.

    ``udp`` must have a read timeout set, the listener polls its stop flag
    between reads.
    """
    raw = packet.to_bytes()
    _write(udp, raw, metrics)

    outcome: Future = Future()
    stop = threading.Event()
    listener = threading.Thread(
        target=_listen,
        args=(udp, expect, block, config.max_datagram_size, outcome, stop),
        name=f"ltftp-await-{expect.name.lower()}-{block}",
        daemon=True,
    )
    listener.start()

    # retransmissions are counted in whole intervals, not accumulated float time
    budget = config.ack_timeout_ms // config.retransmit_ms
    resent = 0
    start = time.monotonic()
    deadline = start + config.ack_timeout_s
    try:
        while True:
            if resent < budget:
                wake = start + (resent + 1) * config.retransmit_s
            else:
                wake = deadline
            try:
                return outcome.result(timeout=max(0.0, wake - time.monotonic()))
            except FutureTimeout:
                pass

            if time.monotonic() < wake:
                continue
            if resent < budget:
                log.debug("retransmit %s block=%d", packet.opcode.name, block)
                _write(udp, raw, metrics)
                metrics.retransmits += 1
                resent += 1
                continue
            metrics.timeouts += 1
            raise AckTimeoutError(f"no {expect.name}({block}) within {config.ack_timeout_ms} ms")
    finally:
        stop.set()
        listener.join()


def send_block(
    udp: UdpEndpoint,
    data: Data,
    config: ServerConfig,
    metrics: TransferMetrics,
) -> None:
    """Deliver one data block and wait for its acknowledgment."""
    send_and_await(udp, data, Opcode.ACK, data.block, config, metrics)


@dataclass(slots=True)
class Session:
    """Server side of one transfer, from request acceptance to completion.

    Owns a socket connected to ``peer`` for its whole lifetime; the socket is
    closed on every exit path, which also releases any waiting listener.
    """

    peer: Address
    request: Request
    storage: DirectoryStorage
    config: ServerConfig

    def run(self) -> TransferMetrics:
        metrics = TransferMetrics()
        try:
            udp = UdpEndpoint.connected(
                self.peer,
                timeout_ms=LISTENER_POLL_MS,
                impairment=self.config.impairment,
            )
        except OSError as exc:
            raise TransportError(f"cannot open socket to {self.peer}: {exc}") from exc

        with udp:
            log.info(
                "%s %r for %s:%d via port %d",
                self.request.opcode.name,
                self.request.filename,
                self.peer[0],
                self.peer[1],
                udp.address[1],
            )
            try:
                self.transfer(udp, metrics)
            except TransferError as exc:
                self._notify(udp, exc)
                raise
            finally:
                metrics.end_ts = time.monotonic()
        return metrics

    def transfer(self, udp: UdpEndpoint, metrics: TransferMetrics) -> None:
        raise NotImplementedError

    def _notify(self, udp: UdpEndpoint, exc: TransferError) -> None:
        if not (self.config.send_errors and exc.notify_peer):
            return
        try:
            udp.send(Error(exc.code, str(exc)).to_bytes())
        except OSError as send_exc:
            log.debug("could not deliver error packet to %s: %s", self.peer, send_exc)


@dataclass(slots=True)
class ReadSession(Session):
    def transfer(self, udp: UdpEndpoint, metrics: TransferMetrics) -> None:
        with self.storage.open_for_read(self.request.filename) as source:
            stream_file(udp, source, self.config, metrics)


def stream_file(
    udp: UdpEndpoint,
    source: BinaryIO,
    config: ServerConfig,
    metrics: TransferMetrics,
) -> None:
    """Send ``source`` block by block, starting at block 1.

    A block shorter than BLOCK_SIZE marks the end of the file, so a file whose
    size is a multiple of BLOCK_SIZE ends with an empty block.
    """
    block = 1
    while True:
        try:
            chunk = source.read(BLOCK_SIZE)
        except OSError as exc:
            raise StorageError(f"read failed: {exc}") from exc

        data = Data(block, chunk)
        send_block(udp, data, config, metrics)
        metrics.blocks += 1
        metrics.bytes_transferred += len(chunk)
        if data.last:
            return
        block = next_block(block)


@dataclass(slots=True)
class WriteSession(Session):
    def transfer(self, udp: UdpEndpoint, metrics: TransferMetrics) -> None:
        filename = self.request.filename
        sink = self.storage.open_for_write(filename)
        try:
            with sink:
                receive_file(udp, sink, self.config, metrics)
        except TransferError:
            self.storage.discard(filename)
            raise


def receive_file(
    udp: UdpEndpoint,
    sink: BinaryIO,
    config: ServerConfig,
    metrics: TransferMetrics,
) -> None:
    """Accept an upload: ack 0, then ack every block until a short one."""
    ack = Ack(0)
    while True:
        block = next_block(ack.block)
        data = send_and_await(udp, ack, Opcode.DATA, block, config, metrics)
        try:
            sink.write(data.payload)
        except OSError as exc:
            raise StorageError(f"write failed: {exc}") from exc
        metrics.blocks += 1
        metrics.bytes_transferred += len(data.payload)
        ack = Ack(block)
        if data.last:
            # final ack is sent once; a lost one makes the peer retry and time out
            _write(udp, ack.to_bytes(), metrics)
            return
