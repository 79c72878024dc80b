"""
Typed notifications the cluster manager publishes to the host application.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Set, Tuple

if TYPE_CHECKING:
    from .membership import NodeRecord

logger = logging.getLogger(__name__)


class EventKind(Enum):
    MASTER = "master"
    SLAVE = "slave"
    ADD_SERVER = "addserver"
    DELETE_SERVER = "deleteserver"


@dataclass(frozen=True)
class ClusterEvent:
    """
    One notification. `record` carries a detached NodeRecord copy for
    addserver/deleteserver and is None for master/slave.
    """
    kind: EventKind
    record: Optional["NodeRecord"] = None


Listener = Callable[[ClusterEvent], None]


class EventBus:
    """Observer list with optional per-listener kind filters."""

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: List[Tuple[Listener, Optional[Set[EventKind]]]] = []

    def subscribe(self, callback: Listener, kinds: Optional[Iterable[EventKind]] = None) -> None:
        wanted = set(kinds) if kinds is not None else None
        with self._lock:
            self._listeners.append((callback, wanted))

    def unsubscribe(self, callback: Listener) -> None:
        with self._lock:
            self._listeners = [(cb, k) for cb, k in self._listeners if cb != callback]

    def publish(self, event: ClusterEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for callback, kinds in listeners:
            if kinds is not None and event.kind not in kinds:
                continue
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in {event.kind.value} listener: {e}", exc_info=True)
