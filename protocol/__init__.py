from .constants import Actions, MAX_DATA_BYTES, MAX_DATAGRAM_BYTES, ProtocolError
from .dispatcher import ClusterMessage, deserialize_message_from_bytes, looks_like_json
from .messages import HeartbeatMessage, ShutdownMessage

__all__ = [
    "Actions",
    "ClusterMessage",
    "HeartbeatMessage",
    "MAX_DATA_BYTES",
    "MAX_DATAGRAM_BYTES",
    "ProtocolError",
    "ShutdownMessage",
    "deserialize_message_from_bytes",
    "looks_like_json",
]
