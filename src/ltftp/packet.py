from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Union

from .constants import ACK, BLOCK_MODULUS, BLOCK_SIZE, DATA, ERROR, RRQ, WRQ

OPCODE_FORMAT = "!H"
BLOCK_FORMAT = "!HH"  # opcode, block number / error code
HEADER_LEN = struct.calcsize(BLOCK_FORMAT)


class PacketFormatError(ValueError):
    """Raised when a datagram cannot be decoded into a packet."""


class Opcode(enum.IntEnum):
    RRQ = RRQ
    WRQ = WRQ
    DATA = DATA
    ACK = ACK
    ERROR = ERROR


def _check_block(block: int) -> None:
    if not 0 <= block < BLOCK_MODULUS:
        raise ValueError(f"block number out of range: {block}")


def next_block(block: int) -> int:
    """Block number following ``block``, wrapping 65535 -> 0."""
    return (block + 1) % BLOCK_MODULUS


@dataclass(frozen=True, slots=True)
class Request:
    opcode: Opcode
    filename: str
    mode: str = "octet"

    def __post_init__(self) -> None:
        if self.opcode not in (Opcode.RRQ, Opcode.WRQ):
            raise ValueError(f"not a request opcode: {self.opcode}")

    @property
    def is_read(self) -> bool:
        return self.opcode == Opcode.RRQ

    def to_bytes(self) -> bytes:
        return (
            struct.pack(OPCODE_FORMAT, int(self.opcode))
            + self.filename.encode("utf-8")
            + b"\x00"
            + self.mode.encode("ascii")
            + b"\x00"
        )

    @staticmethod
    def read(filename: str, mode: str = "octet") -> "Request":
        return Request(Opcode.RRQ, filename, mode)

    @staticmethod
    def write(filename: str, mode: str = "octet") -> "Request":
        return Request(Opcode.WRQ, filename, mode)


@dataclass(frozen=True, slots=True)
class Data:
    block: int
    payload: bytes = b""

    def __post_init__(self) -> None:
        _check_block(self.block)
        if len(self.payload) > BLOCK_SIZE:
            raise ValueError(f"payload too large: {len(self.payload)}")

    @property
    def opcode(self) -> Opcode:
        return Opcode.DATA

    @property
    def last(self) -> bool:
        return len(self.payload) < BLOCK_SIZE

    def to_bytes(self) -> bytes:
        return struct.pack(BLOCK_FORMAT, int(Opcode.DATA), self.block) + self.payload


@dataclass(frozen=True, slots=True)
class Ack:
    block: int

    def __post_init__(self) -> None:
        _check_block(self.block)

    @property
    def opcode(self) -> Opcode:
        return Opcode.ACK

    def to_bytes(self) -> bytes:
        return struct.pack(BLOCK_FORMAT, int(Opcode.ACK), self.block)


@dataclass(frozen=True, slots=True)
class Error:
    code: int
    message: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.code < BLOCK_MODULUS:
            raise ValueError(f"error code out of range: {self.code}")

    @property
    def opcode(self) -> Opcode:
        return Opcode.ERROR

    def to_bytes(self) -> bytes:
        return (
            struct.pack(BLOCK_FORMAT, int(Opcode.ERROR), self.code)
            + self.message.encode("utf-8")
            + b"\x00"
        )


Packet = Union[Request, Data, Ack, Error]


def _strings(body: bytes, count: int) -> list[str]:
    if not body.endswith(b"\x00"):
        raise PacketFormatError("missing NUL terminator")
    fields = body[:-1].split(b"\x00")
    if len(fields) < count:
        raise PacketFormatError(f"expected {count} strings, got {len(fields)}")
    try:
        # trailing option pairs (RFC 2347) are not negotiated and are dropped
        return [f.decode("utf-8") for f in fields[:count]]
    except UnicodeDecodeError as exc:
        raise PacketFormatError("string field is not valid text") from exc


def decode(raw: bytes) -> Packet:
    if len(raw) < struct.calcsize(OPCODE_FORMAT):
        raise PacketFormatError("datagram too small to carry an opcode")
    (op,) = struct.unpack_from(OPCODE_FORMAT, raw)

    match op:
        case Opcode.RRQ | Opcode.WRQ:
            filename, mode = _strings(raw[2:], 2)
            if not filename:
                raise PacketFormatError("empty filename")
            return Request(Opcode(op), filename, mode.lower())
        case Opcode.DATA:
            if len(raw) < HEADER_LEN:
                raise PacketFormatError("truncated data header")
            payload = raw[HEADER_LEN:]
            if len(payload) > BLOCK_SIZE:
                raise PacketFormatError(f"data payload too large: {len(payload)}")
            _, block = struct.unpack_from(BLOCK_FORMAT, raw)
            return Data(block, payload)
        case Opcode.ACK:
            if len(raw) != HEADER_LEN:
                raise PacketFormatError(f"ack must be {HEADER_LEN} bytes, got {len(raw)}")
            _, block = struct.unpack_from(BLOCK_FORMAT, raw)
            return Ack(block)
        case Opcode.ERROR:
            if len(raw) < HEADER_LEN:
                raise PacketFormatError("truncated error header")
            _, code = struct.unpack_from(BLOCK_FORMAT, raw)
            # some clients omit the terminator on error messages
            body = raw[HEADER_LEN:]
            if not body.endswith(b"\x00"):
                body += b"\x00"
            (message,) = _strings(body, 1)
            return Error(code, message)
        case _:
            raise PacketFormatError(f"unknown opcode: {op}")
