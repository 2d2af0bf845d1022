from __future__ import annotations

import logging
import socket
import threading
from typing import Callable

from .config import ServerConfig
from .constants import SERVER_POLL_MS
from .errors import TransferError, TransportError
from .net import Address, UdpEndpoint
from .packet import Packet, PacketFormatError, Request, decode
from .storage import DirectoryStorage
from .transfer import ReadSession, Session, TransferMetrics, WriteSession

log = logging.getLogger(__name__)


class TftpServer:
    """Accepts requests on one socket and runs each transfer in its own thread."""

    def __init__(
        self,
        config: ServerConfig,
        storage: DirectoryStorage | None = None,
        on_finished: Callable[[Session, TransferMetrics], None] | None = None,
    ):
        self.config = config
        self.storage = storage or DirectoryStorage(config.root, read_only=config.read_only)
        self.on_finished = on_finished
        self._stop = threading.Event()

    def serve(self, host: str, port: int) -> None:
        try:
            udp = UdpEndpoint.listening(host, port, timeout_ms=SERVER_POLL_MS)
        except OSError as exc:
            raise TransportError(f"cannot bind {host}:{port}: {exc}") from exc
        with udp:
            self.serve_on(udp)

    def serve_on(self, udp: UdpEndpoint) -> None:
        """Receive loop; returns after :meth:`shutdown`, raises on socket failure."""
        log.info("serving %s on %s:%d", self.storage.root, *udp.address)
        while not self._stop.is_set():
            try:
                raw, addr = udp.recvfrom(self.config.max_datagram_size)
            except socket.timeout:
                continue
            except OSError as exc:
                if self._stop.is_set():
                    break
                raise TransportError(f"receive failed: {exc}") from exc

            try:
                packet = decode(raw)
            except PacketFormatError as exc:
                log.warning("bad packet from %s:%d: %s", addr[0], addr[1], exc)
                continue

            self.dispatch(addr, packet)
        log.info("server stopped")

    def dispatch(self, addr: Address, packet: Packet) -> threading.Thread | None:
        session = self.session_for(addr, packet)
        if session is None:
            return None
        t = threading.Thread(
            target=self.handle_client,
            args=(session,),
            name=f"ltftp-session-{addr[0]}:{addr[1]}",
            daemon=True,
        )
        t.start()
        return t

    def session_for(self, addr: Address, packet: Packet) -> Session | None:
        match packet:
            case Request():
                kind = ReadSession if packet.is_read else WriteSession
                return kind(addr, packet, self.storage, self.config)
            case _:
                log.warning(
                    "invalid packet type %s for new connection from %s:%d",
                    packet.opcode.name,
                    addr[0],
                    addr[1],
                )
                return None

    def handle_client(self, session: Session) -> None:
        req = session.request
        try:
            metrics = session.run()
        except TransferError as exc:
            log.warning(
                "%s %r for %s:%d failed: %s: %s",
                req.opcode.name,
                req.filename,
                session.peer[0],
                session.peer[1],
                type(exc).__name__,
                exc,
            )
            return
        log.info(
            "%s %r for %s:%d done; blocks=%d bytes=%d retransmits=%d seconds=%.3f",
            req.opcode.name,
            req.filename,
            session.peer[0],
            session.peer[1],
            metrics.blocks,
            metrics.bytes_transferred,
            metrics.retransmits,
            metrics.duration_s,
        )
        if self.on_finished is not None:
            self.on_finished(session, metrics)

    def shutdown(self) -> None:
        self._stop.set()
