from abc import ABC, abstractmethod
from typing import Callable, Tuple

InboundCallback = Callable[[bytes, Tuple[str, int]], None]


class TransportError(Exception):
    pass


class TransportBindError(TransportError):
    pass


class Transport(ABC):
    """
    Broadcast channel the cluster core depends on.

    `broadcast` is fire-and-forget: implementations log send failures and
    never raise them. Inbound datagrams are delivered to the callback given
    to `start` as (raw_bytes, (sender_ip, sender_port)).
    """

    @abstractmethod
    def start(self, on_message: InboundCallback):
        pass

    @abstractmethod
    def broadcast(self, payload: bytes):
        pass

    @abstractmethod
    def close(self):
        pass
