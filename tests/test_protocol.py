import json

import pytest  # type: ignore[import-not-found]

from protocol import (
    HeartbeatMessage,
    ProtocolError,
    ShutdownMessage,
    deserialize_message_from_bytes,
    looks_like_json,
)
from protocol.constants import MAX_DATAGRAM_BYTES


def test_heartbeat_wire_format():
    msg = HeartbeatMessage(
        hostname="node-a", ip="10.0.0.1", master=True, eligible=False, uptime=42, data={"k": "v"}
    )
    raw = msg.to_bytes()

    assert raw.endswith(b"\n")
    assert json.loads(raw) == {
        "action": "heartbeat",
        "hostname": "node-a",
        "ip": "10.0.0.1",
        "master": 1,
        "eligible": 0,
        "uptime": 42,
        "data": {"k": "v"},
    }


def test_shutdown_wire_format():
    assert json.loads(ShutdownMessage("node-a").to_bytes()) == {
        "action": "shutdown",
        "hostname": "node-a",
    }


def test_decode_heartbeat_accepts_booleans_and_ints():
    raw = b'{"action":"heartbeat","hostname":"h1","ip":"1.2.3.4","master":true,"eligible":1,"uptime":7.9,"data":{"x":[1,2]}}'
    msg = deserialize_message_from_bytes(raw)

    assert isinstance(msg, HeartbeatMessage)
    assert msg.hostname == "h1"
    assert msg.master is True
    assert msg.eligible is True
    assert msg.uptime == 7
    assert msg.data == {"x": [1, 2]}


def test_decode_heartbeat_defaults_and_sender_address():
    msg = deserialize_message_from_bytes(
        b'{"action":"heartbeat","hostname":"h2"}\n', ("192.168.1.20", 3014)
    )

    assert msg.ip == "192.168.1.20"
    assert msg.master is False
    assert msg.eligible is False
    assert msg.uptime == 0
    assert msg.data == {}


def test_decode_shutdown():
    msg = deserialize_message_from_bytes(b'{"action":"shutdown","hostname":"h3"}\n')
    assert msg == ShutdownMessage("h3")


@pytest.mark.parametrize(
    "raw",
    [
        b"{not json",
        b"\xff\xfe{",
        b"[1, 2, 3]",
        b'{"hostname": "h1"}',
        b'{"action": "reboot", "hostname": "h1"}',
        b'{"action": "heartbeat"}',
        b'{"action": "heartbeat", "hostname": ""}',
        b'{"action": "heartbeat", "hostname": "h1", "master": 2}',
        b'{"action": "heartbeat", "hostname": "h1", "uptime": "long"}',
        b'{"action": "heartbeat", "hostname": "h1", "data": [1]}',
        b'{"action": "heartbeat", "hostname": "h1", "ip": 17}',
        b'{"action": "heartbeat", "hostname": "h1", "uptime": 1e400}',
        b'{"action": "heartbeat", "hostname": "h1", "uptime": NaN}',
        b'{"action": "heartbeat", "hostname": "h1", "uptime": -Infinity}',
        b'{"action": "heartbeat", "hostname": "h1", "data": ' + b"[" * 60000,
    ],
)
def test_decode_rejects_malformed(raw):
    with pytest.raises(ProtocolError):
        deserialize_message_from_bytes(raw)


def test_looks_like_json():
    assert looks_like_json(b'  {"a": 1}')
    assert not looks_like_json(b"PING")
    assert not looks_like_json(b"")


def test_oversized_message_rejected():
    msg = HeartbeatMessage(hostname="h", ip="1.1.1.1", data={"blob": "x" * MAX_DATAGRAM_BYTES})
    with pytest.raises(ProtocolError):
        msg.to_bytes()


def test_decode_large_integer_uptime():
    raw = b'{"action": "heartbeat", "hostname": "h1", "uptime": 1' + b"0" * 30 + b"}"
    msg = deserialize_message_from_bytes(raw)
    assert msg.uptime == 10 ** 30
