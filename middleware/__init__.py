from .transport import InboundCallback, Transport, TransportBindError, TransportError
from .udp_broadcast import UdpBroadcastTransport, calc_broadcast_ip, detect_lan_ip

__all__ = [
    "InboundCallback",
    "Transport",
    "TransportBindError",
    "TransportError",
    "UdpBroadcastTransport",
    "calc_broadcast_ip",
    "detect_lan_ip",
]
