"""
Cluster manager: the object a host application owns to take part in
master election on its LAN segment.

All mutations (ticks, tocks, inbound datagrams, host calls) run under one
re-entrant state lock. Notifications raised while the lock is held are
queued and dispatched after it is released, in the order they were raised.
"""

import copy
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from app_config.config_loader import ClusterCfg, NodeCfg
from middleware.transport import Transport
from protocol import (
    HeartbeatMessage,
    MAX_DATA_BYTES,
    ProtocolError,
    ShutdownMessage,
    deserialize_message_from_bytes,
    looks_like_json,
)

from .election_flow import ConflictResolver, ElectionEvaluator
from .events import ClusterEvent, EventBus, EventKind, Listener
from .heartbeat import HeartbeatEmitter
from .membership import MembershipTable, NodeRecord
from .scheduler import PeriodicWorker
from .state import ClusterState, NodeRole

logger = logging.getLogger(__name__)


class ClusterManager:
    def __init__(
        self,
        cluster_cfg: ClusterCfg,
        node_cfg: NodeCfg,
        transport: Transport,
        clock: Callable[[], float] = time.time,
        on_shutdown_request: Optional[Callable[[], None]] = None,
    ):
        """
        Args:
            cluster_cfg: Timing, port and conflict policy.
            node_cfg: Local hostname, address and eligibility.
            transport: Broadcast channel; started by `start()`.
            clock: Wall clock in seconds; injectable for tests.
            on_shutdown_request: Called when a master conflict is configured
                to be fatal, after the state lock is released. The host is
                expected to call `shutdown()`.
        """
        self.cluster_cfg = cluster_cfg
        self.node_cfg = node_cfg
        self.transport = transport
        self._clock = clock
        self._on_shutdown_request = on_shutdown_request

        self._state_lock = threading.RLock()
        self._dispatch_lock = threading.RLock()
        self._pending_events: List[ClusterEvent] = []
        self._events = EventBus()

        self._stopping = False
        self._closed = False
        self._started = False
        self._shutdown_pending = False
        self.shutdown_requested = threading.Event()

        self.state = ClusterState(
            self_hostname=node_cfg.hostname,
            self_eligible=node_cfg.eligible,
        )
        address = node_cfg.ip or "127.0.0.1"
        self.state.members[node_cfg.hostname] = NodeRecord(
            hostname=node_cfg.hostname,
            address=address,
            is_master=False,
            is_eligible=node_cfg.eligible,
            is_self=True,
            last_seen=clock(),
            data=self.state.data,
        )

        self.table = MembershipTable(self.state, self._queue_event)
        self.emitter = HeartbeatEmitter(self.state, transport, address, clock)
        self.resolver = ConflictResolver(
            self.state,
            notify=self._queue_event,
            emit_heartbeat=self.emitter.emit,
            request_shutdown=self._request_shutdown,
            exit_on_conflict=cluster_cfg.exit_on_conflict,
        )
        self.evaluator = ElectionEvaluator(
            self.state,
            self.table,
            self.resolver,
            notify=self._queue_event,
            emit_heartbeat=self.emitter.emit,
            max_age=cluster_cfg.dead_after,
        )

        self._tick_timer = PeriodicWorker(
            f"ClusterTick-{node_cfg.hostname}", cluster_cfg.heartbeat_freq, self.tick
        )
        self._tock_timer = PeriodicWorker(
            f"ClusterTock-{node_cfg.hostname}", cluster_cfg.tock_interval, self.tock
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Bind the transport, send the first heartbeat and start both timers."""
        with self._state_lock:
            if self._started:
                logger.warning("Cluster manager already started")
                return
            self._started = True

        logger.info(
            "Starting cluster manager for %s (port=%s, heartbeat=%ss, check_beats=%s)",
            self.hostname,
            self.cluster_cfg.comm_port,
            self.cluster_cfg.heartbeat_freq,
            self.cluster_cfg.check_beats,
        )
        # Bind failures propagate: the node cannot participate without a receive channel.
        try:
            self.transport.start(self.on_message)
        except Exception:
            with self._state_lock:
                self._started = False
            raise

        with self._state_lock:
            self.emitter.mark_started(self._clock())
        self.tick()
        self._tick_timer.start()
        self._tock_timer.start()

    def shutdown(self):
        """Stop timers, announce departure once, and release the transport."""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            self._stopping = True

        logger.info("Shutting down cluster manager for %s", self.hostname)
        self._tick_timer.stop()
        self._tock_timer.stop()

        if self._started:
            with self._state_lock:
                self.emitter.emit_shutdown()
            try:
                self.transport.close()
            except Exception as e:
                logger.error(f"Error closing transport: {e}", exc_info=True)

    def _request_shutdown(self):
        # Runs under the state lock; the host callback waits for tock() to release it.
        self._stopping = True
        self._shutdown_pending = True
        self.shutdown_requested.set()

    def _notify_shutdown_request(self):
        if self._on_shutdown_request:
            try:
                self._on_shutdown_request()
            except Exception as e:
                logger.error(f"Error in shutdown request callback: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def tick(self):
        with self._state_lock:
            if self._stopping:
                return
            self.emitter.emit()

    def tock(self):
        with self._state_lock:
            if self._stopping:
                return
            self.evaluator.evaluate(self._clock())
            notify_shutdown, self._shutdown_pending = self._shutdown_pending, False
        self._flush_events()
        if notify_shutdown:
            self._notify_shutdown_request()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def on_message(self, raw_bytes: bytes, sender: Optional[Tuple[str, int]] = None):
        if not looks_like_json(raw_bytes):
            logger.debug("Ignoring non-JSON datagram from %s", sender)
            return
        try:
            message = deserialize_message_from_bytes(raw_bytes, sender)
        except ProtocolError as e:
            logger.warning("Dropping malformed message from %s: %s", sender, e)
            return

        if isinstance(message, ShutdownMessage):
            self._handle_shutdown_notice(message)
        else:
            self._handle_heartbeat(message)

    def _handle_heartbeat(self, message: HeartbeatMessage):
        with self._state_lock:
            if self._stopping:
                return
            logger.debug("Received heartbeat from: %s", message.hostname)
            now = self._clock()
            if message.hostname == self.state.self_hostname:
                record = self._own_echo(message)
            else:
                record = NodeRecord(
                    hostname=message.hostname,
                    address=message.ip,
                    is_master=message.master,
                    is_eligible=message.eligible,
                    uptime_seconds=message.uptime,
                    data=message.data,
                )
            self.table.upsert(record, now)
        self._flush_events()

    def _own_echo(self, message: HeartbeatMessage) -> NodeRecord:
        current = self.state.self_record
        return NodeRecord(
            hostname=current.hostname,
            address=message.ip or current.address,
            is_master=self.state.local_role is NodeRole.MASTER,
            is_eligible=self.state.self_eligible,
            is_self=True,
            uptime_seconds=message.uptime,
            data=self.state.data,
        )

    def _handle_shutdown_notice(self, message: ShutdownMessage):
        with self._state_lock:
            if self._stopping:
                return
            logger.info("Received shutdown notice from: %s", message.hostname)
            expired = self.table.mark_stale(message.hostname)
        if expired:
            self.tock()

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, callback: Listener, kinds: Optional[Iterable[EventKind]] = None):
        self._events.subscribe(callback, kinds)

    def unsubscribe(self, callback: Listener):
        self._events.unsubscribe(callback)

    def _queue_event(self, event: ClusterEvent):
        self._pending_events.append(event)

    def _flush_events(self):
        with self._dispatch_lock:
            with self._state_lock:
                pending, self._pending_events = self._pending_events, []
            for event in pending:
                self._events.publish(event)

    # ------------------------------------------------------------------
    # Queries and host-side controls
    # ------------------------------------------------------------------

    @property
    def hostname(self) -> str:
        return self.state.self_hostname

    @property
    def eligible(self) -> bool:
        return self.state.self_eligible

    @property
    def role(self) -> NodeRole:
        with self._state_lock:
            return self.state.local_role

    @property
    def is_master(self) -> bool:
        return self.role is NodeRole.MASTER

    @property
    def is_slave(self) -> bool:
        return self.role is NodeRole.SLAVE

    @property
    def leader_hostname(self) -> str:
        with self._state_lock:
            return self.state.leader_hostname

    def members(self) -> Dict[str, NodeRecord]:
        with self._state_lock:
            return {name: record.snapshot() for name, record in self.state.members.items()}

    @property
    def data(self) -> Dict[str, Any]:
        with self._state_lock:
            return copy.deepcopy(self.state.data)

    def set_data(self, data: Dict[str, Any]):
        """Replace the opaque payload broadcast with every heartbeat."""
        if not isinstance(data, dict):
            raise TypeError(f"cluster data must be a dict, got {type(data).__name__}")
        try:
            size = len(json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))
        except (TypeError, ValueError) as e:
            raise ValueError(f"cluster data is not JSON serializable: {e}") from e
        if size > MAX_DATA_BYTES:
            raise ValueError(f"cluster data is {size} bytes, limit is {MAX_DATA_BYTES}")

        with self._state_lock:
            self.state.data = copy.deepcopy(data)
            self.state.self_record.data = self.state.data

    def lock_server(self, hostname: str, locked: bool = True) -> bool:
        """Pin (or unpin) a member so pruning never removes it."""
        with self._state_lock:
            return self.table.set_locked(hostname, locked)
