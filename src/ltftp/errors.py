from __future__ import annotations

from .constants import ERR_ILLEGAL_OPERATION, ERR_NOT_DEFINED


class TransferError(Exception):
    """Base class for failures that end a single transfer session."""

    code: int = ERR_NOT_DEFINED
    # whether the peer should be told with an ERROR packet
    notify_peer: bool = False


class AckTimeoutError(TransferError, TimeoutError):
    """No matching response arrived before the overall deadline."""


class ProtocolError(TransferError):
    """An undecodable or unexpected datagram arrived mid-transfer."""

    code = ERR_ILLEGAL_OPERATION
    notify_peer = True


class PeerError(ProtocolError):
    """The peer aborted the transfer with an ERROR packet."""

    notify_peer = False

    def __init__(self, code: int, message: str):
        super().__init__(f"peer error {code}: {message}")
        self.peer_code = code


class TransportError(TransferError):
    """Socket write or read failure."""


class StorageError(TransferError):
    notify_peer = True

    def __init__(self, message: str, code: int = ERR_NOT_DEFINED):
        super().__init__(message)
        self.code = code
