"""
Defines the core constants, custom exceptions, and action names for the
cluster heartbeat protocol.

Every datagram carries exactly one JSON object identified by its `action`.
"""

# Largest payload that fits a single UDP/IPv4 datagram.
MAX_DATAGRAM_BYTES = 65507

# Upper bound for the serialized opaque user data carried by each heartbeat.
# Keeps a full heartbeat comfortably inside one datagram.
MAX_DATA_BYTES = 32 * 1024

# Datagram terminator appended after the JSON body.
FRAME_TERMINATOR = b"\n"


class ProtocolError(Exception):
    """
    A custom exception raised for framing or validation errors encountered
    while decoding or encoding cluster messages.

    Attributes:
        action (str, optional): The message action in which the error
                                occurred, aiding in debugging.
    """

    def __init__(self, message, action=None):
        super().__init__(message)
        self.action = action


class Actions:
    """
    Defines the protocol actions used to identify the type of each message.
    """
    # Periodic state announcement broadcast by every node on each tick.
    HEARTBEAT = "heartbeat"

    # Best-effort departure notice broadcast once at shutdown.
    SHUTDOWN = "shutdown"

    ALL = (HEARTBEAT, SHUTDOWN)
