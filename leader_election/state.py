"""
Shared cluster state owned by one ClusterManager.

Only MembershipTable and ElectionEvaluator mutate it, always under the
manager's state lock.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .membership import NodeRecord


class NodeRole(Enum):
    """Local node's position in the cluster."""
    UNKNOWN = "unknown"
    SLAVE = "slave"
    MASTER = "master"


@dataclass
class ClusterState:
    self_hostname: str
    self_eligible: bool = True
    members: Dict[str, NodeRecord] = field(default_factory=dict)
    leader_hostname: str = ""
    local_role: NodeRole = NodeRole.UNKNOWN
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def self_record(self) -> NodeRecord:
        return self.members[self.self_hostname]

    @property
    def leader_record(self) -> Optional[NodeRecord]:
        if not self.leader_hostname:
            return None
        return self.members.get(self.leader_hostname)

    def set_role(self, role: NodeRole) -> None:
        """Keep local_role and self's is_master flag in lockstep."""
        self.local_role = role
        self.self_record.is_master = role is NodeRole.MASTER
