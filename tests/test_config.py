from __future__ import annotations

import pytest

from ltftp.config import ServerConfig


def test_defaults():
    c = ServerConfig()
    assert c.ack_timeout_s == 20.0
    assert c.retransmit_s == 5.0
    assert c.send_errors
    assert not c.read_only


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(ack_timeout_ms=100, retransmit_ms=100),
        dict(ack_timeout_ms=100, retransmit_ms=200),
        dict(ack_timeout_ms=0, retransmit_ms=0),
        dict(retransmit_ms=-1),
        dict(max_datagram_size=100),
    ],
)
def test_rejects_invalid_timing(kwargs):
    with pytest.raises(ValueError):
        ServerConfig(**kwargs)


def test_instances_do_not_share_timers():
    fast = ServerConfig(ack_timeout_ms=300, retransmit_ms=100)
    slow = ServerConfig()
    assert fast.ack_timeout_ms == 300
    assert slow.ack_timeout_ms == 20_000
