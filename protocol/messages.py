"""
Message types exchanged between cluster nodes.

Each message knows how to render itself as the JSON object placed on the
wire. Parsing lives in `protocol.dispatcher`.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict

from .constants import Actions, FRAME_TERMINATOR, MAX_DATAGRAM_BYTES, ProtocolError


def _encode(body: Dict[str, Any], action: str) -> bytes:
    try:
        raw = json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"message is not JSON serializable: {e}", action) from e
    raw += FRAME_TERMINATOR
    if len(raw) > MAX_DATAGRAM_BYTES:
        raise ProtocolError(
            f"encoded message is {len(raw)} bytes, limit is {MAX_DATAGRAM_BYTES}", action
        )
    return raw


@dataclass
class HeartbeatMessage:
    """Periodic snapshot of one node's self-reported state."""
    hostname: str
    ip: str
    master: bool = False
    eligible: bool = False
    uptime: int = 0
    data: Dict[str, Any] = field(default_factory=dict)

    action = Actions.HEARTBEAT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "hostname": self.hostname,
            "ip": self.ip,
            "master": 1 if self.master else 0,
            "eligible": 1 if self.eligible else 0,
            "uptime": int(self.uptime),
            "data": self.data,
        }

    def to_bytes(self) -> bytes:
        return _encode(self.to_dict(), self.action)


@dataclass
class ShutdownMessage:
    """Departure notice; receivers expire the sender's record immediately."""
    hostname: str

    action = Actions.SHUTDOWN

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "hostname": self.hostname}

    def to_bytes(self) -> bytes:
        return _encode(self.to_dict(), self.action)
