"""
Membership table: the in-memory map of every known node, keyed by hostname.

Records are created on the first heartbeat from a peer, fully replaced on
each later heartbeat, and removed when they go stale or when the peer
announces its departure. Self's record is never pruned.
"""

import copy
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable, Dict, List

from .events import ClusterEvent, EventKind

if TYPE_CHECKING:
    from .state import ClusterState

logger = logging.getLogger(__name__)

# Freshness stamp given to records whose owner announced its departure.
EXPIRED = float("-inf")


@dataclass
class NodeRecord:
    hostname: str
    address: str
    is_master: bool = False
    is_eligible: bool = True
    is_self: bool = False
    last_seen: float = 0.0
    uptime_seconds: int = 0
    locked: bool = False
    data: Dict[str, Any] = field(default_factory=dict)

    def snapshot(self) -> "NodeRecord":
        """Detached copy safe to hand to readers outside the state lock."""
        return replace(self, data=copy.deepcopy(self.data))


class MembershipTable:
    """
    Add/update/prune logic over `ClusterState.members`.

    Every operation is a synchronous mutation; callers serialize access.
    Membership changes are reported through `notify` as addserver /
    deleteserver events.
    """

    def __init__(self, state: "ClusterState", notify: Callable[[ClusterEvent], None]):
        self.state = state
        self._notify = notify

    def hostnames(self) -> List[str]:
        return sorted(self.state.members)

    def upsert(self, record: NodeRecord, now: float) -> bool:
        """
        Insert or fully replace the record for `record.hostname`.

        The host-side `locked` pin survives replacement since peers never
        report it. Returns True if the hostname was new.
        """
        record.last_seen = now
        existing = self.state.members.get(record.hostname)
        if existing is not None:
            record.locked = existing.locked
            self.state.members[record.hostname] = record
            logger.debug("Updated member %s (master=%s)", record.hostname, record.is_master)
            return False

        self.state.members[record.hostname] = record
        logger.info("Added server to cluster: %s (%s)", record.hostname, record.address)
        self._notify(ClusterEvent(EventKind.ADD_SERVER, record.snapshot()))
        return True

    def touch(self, hostname: str, now: float) -> None:
        record = self.state.members.get(hostname)
        if record is not None:
            record.last_seen = now

    def mark_stale(self, hostname: str) -> bool:
        """Expire a peer's record so the next prune removes it."""
        record = self.state.members.get(hostname)
        if record is None or record.is_self:
            return False
        record.last_seen = EXPIRED
        logger.debug("Marked %s as stale", hostname)
        return True

    def set_locked(self, hostname: str, locked: bool = True) -> bool:
        record = self.state.members.get(hostname)
        if record is None:
            return False
        record.locked = locked
        return True

    def prune(self, now: float, max_age: float) -> List[NodeRecord]:
        """
        Remove every non-self, non-locked record last seen before
        `now - max_age`. Clears the cached leader if it was removed.
        """
        cutoff = now - max_age
        dead = [
            record
            for record in self.state.members.values()
            if not record.is_self and not record.locked and record.last_seen < cutoff
        ]

        for record in dead:
            del self.state.members[record.hostname]
            logger.info("Removing dead server from cluster: %s", record.hostname)
            if record.hostname == self.state.leader_hostname:
                logger.warning("Lost master server %s", record.hostname)
                self.state.leader_hostname = ""
            self._notify(ClusterEvent(EventKind.DELETE_SERVER, record.snapshot()))

        return dead
