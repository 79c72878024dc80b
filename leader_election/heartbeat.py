"""
Heartbeat emission ("tick").

Every tick the local node broadcasts a snapshot of its own record so that
peers can refresh it before it goes stale.
"""

import logging
from typing import TYPE_CHECKING, Callable, Optional

from protocol import HeartbeatMessage, ProtocolError, ShutdownMessage

from .state import ClusterState, NodeRole

if TYPE_CHECKING:
    from middleware.transport import Transport

logger = logging.getLogger(__name__)


class HeartbeatEmitter:
    """Builds the local heartbeat and hands it to the transport."""

    def __init__(
        self,
        state: ClusterState,
        transport: "Transport",
        address: str,
        clock: Callable[[], float],
    ):
        self.state = state
        self.transport = transport
        self.address = address
        self._clock = clock
        self._started_at: Optional[float] = None

    def mark_started(self, now: float) -> None:
        self._started_at = now

    def uptime(self, now: float) -> int:
        if self._started_at is None:
            return 0
        return max(0, int(now - self._started_at))

    def snapshot(self) -> HeartbeatMessage:
        now = self._clock()
        return HeartbeatMessage(
            hostname=self.state.self_hostname,
            ip=self.address,
            master=self.state.local_role is NodeRole.MASTER,
            eligible=self.state.self_eligible,
            uptime=self.uptime(now),
            data=self.state.data,
        )

    def emit(self) -> bool:
        """Broadcast one heartbeat. Failures are logged; the next tick retries."""
        message = self.snapshot()
        logger.debug(
            "Broadcasting heartbeat (master=%s, uptime=%ss)", message.master, message.uptime
        )
        return self._send(message)

    def emit_shutdown(self) -> bool:
        logger.info("Broadcasting shutdown notice for %s", self.state.self_hostname)
        return self._send(ShutdownMessage(hostname=self.state.self_hostname))

    def _send(self, message) -> bool:
        try:
            payload = message.to_bytes()
        except ProtocolError as e:
            logger.error(f"Could not encode {message.action} message: {e}")
            return False
        try:
            self.transport.broadcast(payload)
        except Exception as e:
            logger.warning(f"UDP broadcast failed: {e}")
            return False
        return True
