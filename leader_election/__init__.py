"""
Leader election module for LAN broadcast clusters.

Peers broadcast heartbeats, prune silent members, and agree on the
lowest-named eligible node as master without a central coordinator.
"""

from .election_flow import ConflictResolver, ElectionEvaluator
from .events import ClusterEvent, EventBus, EventKind
from .heartbeat import HeartbeatEmitter
from .manager import ClusterManager
from .membership import MembershipTable, NodeRecord
from .scheduler import PeriodicWorker
from .state import ClusterState, NodeRole

__all__ = [
    'ClusterEvent',
    'ClusterManager',
    'ClusterState',
    'ConflictResolver',
    'ElectionEvaluator',
    'EventBus',
    'EventKind',
    'HeartbeatEmitter',
    'MembershipTable',
    'NodeRecord',
    'NodeRole',
    'PeriodicWorker',
]
