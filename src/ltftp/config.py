from __future__ import annotations

from dataclasses import dataclass, field

from .constants import (
    BLOCK_SIZE,
    DEFAULT_ACK_TIMEOUT_MS,
    DEFAULT_RETRANSMIT_MS,
    MAX_DATAGRAM_SIZE,
)
from .net import Impairment


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Settings fixed at server construction and shared read-only by every session."""

    root: str = "."
    read_only: bool = False
    ack_timeout_ms: int = DEFAULT_ACK_TIMEOUT_MS
    retransmit_ms: int = DEFAULT_RETRANSMIT_MS
    max_datagram_size: int = MAX_DATAGRAM_SIZE
    send_errors: bool = True
    impairment: Impairment = field(default_factory=Impairment)

    def __post_init__(self) -> None:
        if self.ack_timeout_ms <= 0 or self.retransmit_ms <= 0:
            raise ValueError("timeouts must be positive")
        if self.retransmit_ms >= self.ack_timeout_ms:
            raise ValueError(
                f"retransmit interval ({self.retransmit_ms} ms) must be shorter "
                f"than the ack timeout ({self.ack_timeout_ms} ms)"
            )
        if self.max_datagram_size < 4 + BLOCK_SIZE:
            raise ValueError(f"max datagram size too small: {self.max_datagram_size}")

    @property
    def ack_timeout_s(self) -> float:
        return self.ack_timeout_ms / 1000.0

    @property
    def retransmit_s(self) -> float:
        return self.retransmit_ms / 1000.0
