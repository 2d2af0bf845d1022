from __future__ import annotations

import pytest

from ltftp.packet import (
    Ack,
    Data,
    Error,
    Opcode,
    PacketFormatError,
    Request,
    decode,
    next_block,
)


def test_decode_read_request():
    p = decode(b"\x00\x01hello.txt\x00OCTET\x00")
    assert p == Request(Opcode.RRQ, "hello.txt", "octet")
    assert p.is_read


def test_request_ignores_trailing_options():
    p = decode(Request.write("a.bin").to_bytes() + b"blksize\x001024\x00")
    assert p == Request(Opcode.WRQ, "a.bin", "octet")
    assert not p.is_read


def test_data_wire_layout():
    d = Data(7, b"hello")
    assert d.to_bytes() == b"\x00\x03\x00\x07hello"
    assert decode(d.to_bytes()) == d
    assert d.last


def test_full_block_is_not_last():
    assert not Data(1, b"x" * 512).last
    assert Data(1, b"").last


def test_ack_wire_layout():
    assert Ack(258).to_bytes() == b"\x00\x04\x01\x02"
    assert decode(b"\x00\x04\x01\x02") == Ack(258)


def test_error_roundtrip_and_missing_terminator():
    e = Error(1, "File not found")
    assert decode(e.to_bytes()) == e
    assert decode(b"\x00\x05\x00\x02denied") == Error(2, "denied")


@pytest.mark.parametrize(
    "raw",
    [
        b"",
        b"\x00",
        b"\x00\x09\x00\x01",
        b"\x00\x01file-without-terminator",
        b"\x00\x01only-filename\x00",
        b"\x00\x01\x00octet\x00",
        b"\x00\x03\x00",
        b"\x00\x03\x00\x01" + b"x" * 513,
        b"\x00\x04\x00\x01\x00",
        b"\x00\x04\x00",
        b"\x00\x01\xff\xfe\x00octet\x00",
    ],
)
def test_malformed_datagrams(raw):
    with pytest.raises(PacketFormatError):
        decode(raw)


def test_constructors_validate():
    with pytest.raises(ValueError):
        Data(70000, b"")
    with pytest.raises(ValueError):
        Data(1, b"x" * 513)
    with pytest.raises(ValueError):
        Ack(-1)
    with pytest.raises(ValueError):
        Request(Opcode.DATA, "x")
    with pytest.raises(ValueError):
        Error(70000, "too big")
    with pytest.raises(ValueError):
        Error(-1)


def test_block_numbers_wrap_to_zero():
    assert next_block(1) == 2
    assert next_block(65535) == 0
    assert next_block(0) == 1
