"""
Provides the decoding entry point for every inbound cluster datagram,
routing on the `action` field to the matching message type.
"""
import json
import math
from typing import Any, Dict, Optional, Tuple, Union

from .constants import Actions, FRAME_TERMINATOR, ProtocolError
from .messages import HeartbeatMessage, ShutdownMessage

ClusterMessage = Union[HeartbeatMessage, ShutdownMessage]


def looks_like_json(raw_bytes: bytes) -> bool:
    """Cheap pre-check; anything not starting with '{' is foreign traffic."""
    return raw_bytes.lstrip()[:1] == b"{"


def _parse_flag(body: Dict[str, Any], key: str, action: str) -> bool:
    value = body.get(key, 0)
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ProtocolError(f"field '{key}' must be 0/1, got {value!r}", action)


def _parse_heartbeat(body: Dict[str, Any], hostname: str, sender_ip: Optional[str]) -> HeartbeatMessage:
    action = Actions.HEARTBEAT

    ip = body.get("ip") or sender_ip or ""
    if not isinstance(ip, str):
        raise ProtocolError(f"field 'ip' must be a string, got {ip!r}", action)

    uptime = body.get("uptime", 0)
    if isinstance(uptime, bool) or not isinstance(uptime, (int, float)):
        raise ProtocolError(f"field 'uptime' must be a number, got {uptime!r}", action)
    if isinstance(uptime, float) and not math.isfinite(uptime):
        raise ProtocolError(f"field 'uptime' must be finite, got {uptime!r}", action)

    data = body.get("data")
    if data is None:
        data = {}
    elif not isinstance(data, dict):
        raise ProtocolError("field 'data' must be an object", action)

    return HeartbeatMessage(
        hostname=hostname,
        ip=ip,
        master=_parse_flag(body, "master", action),
        eligible=_parse_flag(body, "eligible", action),
        uptime=int(uptime),
        data=data,
    )


def deserialize_message_from_bytes(
    raw_bytes: bytes, sender: Optional[Tuple[str, int]] = None
) -> ClusterMessage:
    """
    Decodes one datagram into a message object.

    Args:
        raw_bytes: The datagram payload, optionally newline terminated.
        sender: The (ip, port) the datagram came from. Used as the address
                of a heartbeat that omits its own `ip`.

    Returns:
        A `HeartbeatMessage` or `ShutdownMessage`.

    Raises:
        ProtocolError: If the payload is not UTF-8 JSON, is not an object,
                       or lacks a known `action` or a `hostname`.
    """
    try:
        text = raw_bytes.rstrip(FRAME_TERMINATOR).decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError("datagram is not valid UTF-8") from e

    try:
        body = json.loads(text)
    except (ValueError, RecursionError) as e:
        raise ProtocolError(f"failed to parse JSON message: {e}") from e

    if not isinstance(body, dict):
        raise ProtocolError("message must be a JSON object")

    action = body.get("action")
    if action not in Actions.ALL:
        raise ProtocolError(f"unknown action: {action!r}", action)

    hostname = body.get("hostname")
    if not hostname or not isinstance(hostname, str):
        raise ProtocolError("message is missing 'hostname'", action)

    if action == Actions.SHUTDOWN:
        return ShutdownMessage(hostname=hostname)

    sender_ip = sender[0] if sender else None
    return _parse_heartbeat(body, hostname, sender_ip)
