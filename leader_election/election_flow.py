"""
Election flow module ("tock").

Every tock the evaluator prunes stale members, discovers an existing
master, promotes the local node when it is the natural winner, and checks
for a second master. The order of those steps matters: a master pruned in
this pass must not block self-promotion in the same pass.

Ranking is by hostname: the lexicographically lowest eligible hostname
wins. Hostnames are assumed unique.
"""

import logging
from typing import Callable, Optional

from .events import ClusterEvent, EventKind
from .membership import MembershipTable
from .state import ClusterState, NodeRole

logger = logging.getLogger(__name__)


class ConflictResolver:
    """
    Handles two nodes both claiming master.

    By default the local node relinquishes and lets the next tock recompute
    the winner. With `exit_on_conflict` it requests host shutdown instead.
    """

    def __init__(
        self,
        state: ClusterState,
        notify: Callable[[ClusterEvent], None],
        emit_heartbeat: Callable[[], bool],
        request_shutdown: Callable[[], None],
        exit_on_conflict: bool = False,
    ):
        self.state = state
        self._notify = notify
        self._emit_heartbeat = emit_heartbeat
        self._request_shutdown = request_shutdown
        self.exit_on_conflict = exit_on_conflict

    def resolve(self, other_hostname: str) -> None:
        logger.error("MASTER CONFLICT: %s also thinks it is master!", other_hostname)
        if self.exit_on_conflict:
            logger.critical("The server is shutting down due to master conflict.")
            self._request_shutdown()
            return
        self.relinquish()

    def relinquish(self) -> bool:
        if self.state.local_role is not NodeRole.MASTER:
            return False
        logger.warning("We are relinquishing master control")
        self.state.set_role(NodeRole.SLAVE)
        self.state.leader_hostname = ""
        self._notify(ClusterEvent(EventKind.SLAVE))
        self._emit_heartbeat()
        return True


class ElectionEvaluator:
    """Runs one election pass against the shared cluster state."""

    def __init__(
        self,
        state: ClusterState,
        table: MembershipTable,
        resolver: ConflictResolver,
        notify: Callable[[ClusterEvent], None],
        emit_heartbeat: Callable[[], bool],
        max_age: float,
    ):
        self.state = state
        self.table = table
        self.resolver = resolver
        self._notify = notify
        self._emit_heartbeat = emit_heartbeat
        self.max_age = max_age

    def evaluate(self, now: float) -> None:
        # Self is always considered live.
        self.table.touch(self.state.self_hostname, now)
        self.table.prune(now, self.max_age)
        self._discover_leader()
        self._maybe_promote()
        self._check_conflict()

    def _other_masters(self):
        for hostname in self.table.hostnames():
            record = self.state.members[hostname]
            if record.is_master and not record.is_self:
                yield record

    def _discover_leader(self) -> None:
        leader = self.state.leader_record
        if self.state.leader_hostname and (leader is None or not leader.is_master):
            logger.info("Server %s no longer claims master", self.state.leader_hostname)
            self.state.leader_hostname = ""

        # While we hold master ourselves, other claims are conflicts, not leaders.
        if self.state.local_role is NodeRole.MASTER:
            return

        found: Optional[str] = next((r.hostname for r in self._other_masters()), None)
        if found is None or found == self.state.leader_hostname:
            return

        logger.info("The master server is now: %s", found)
        logger.debug("Current server cluster: %s", ", ".join(self.table.hostnames()))
        self.state.leader_hostname = found
        if self.state.local_role is not NodeRole.SLAVE:
            self.state.set_role(NodeRole.SLAVE)
            self._notify(ClusterEvent(EventKind.SLAVE))

    def _higher_priority_candidate(self) -> Optional[str]:
        me = self.state.self_hostname
        for hostname in self.table.hostnames():
            record = self.state.members[hostname]
            if record.is_eligible and hostname < me:
                return hostname
        return None

    def _maybe_promote(self) -> None:
        if self.state.leader_hostname:
            return
        if self.state.local_role is NodeRole.MASTER or not self.state.self_eligible:
            return

        higher = self._higher_priority_candidate()
        if higher is not None:
            logger.debug("Deferring to higher priority candidate %s", higher)
            return

        logger.info("We are now the master server")
        logger.debug("Current server cluster: %s", ", ".join(self.table.hostnames()))
        self.state.set_role(NodeRole.MASTER)
        self.state.leader_hostname = self.state.self_hostname
        self._notify(ClusterEvent(EventKind.MASTER))
        self._emit_heartbeat()

    def _check_conflict(self) -> None:
        if self.state.local_role is not NodeRole.MASTER:
            return
        other = next(self._other_masters(), None)
        if other is not None:
            self.resolver.resolve(other.hostname)
