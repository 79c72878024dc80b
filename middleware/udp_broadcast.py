"""
UDP broadcast transport and LAN broadcast-address discovery.
"""

import ipaddress
import logging
import socket
import threading
from typing import Optional, Tuple

import psutil

from protocol.constants import MAX_DATAGRAM_BYTES

from .transport import InboundCallback, Transport, TransportBindError

logger = logging.getLogger(__name__)

LIMITED_BROADCAST = "255.255.255.255"


def _first_lan_interface() -> Optional[Tuple[str, str]]:
    """(address, netmask) of the first non-loopback IPv4 interface, if any."""
    try:
        interfaces = psutil.net_if_addrs()
    except (OSError, RuntimeError) as e:
        logger.warning("Could not enumerate network interfaces: %s", e)
        return None

    for name, addrs in interfaces.items():
        for addr in addrs:
            if addr.family != socket.AF_INET or not addr.address:
                continue
            try:
                ip = ipaddress.IPv4Address(addr.address)
            except ValueError:
                continue
            if ip.is_loopback or ip.is_link_local:
                continue
            logger.debug("Using interface %s (%s/%s)", name, addr.address, addr.netmask)
            return addr.address, addr.netmask or "255.255.255.255"
    return None


def detect_lan_ip() -> str:
    found = _first_lan_interface()
    return found[0] if found else "127.0.0.1"


def calc_broadcast_ip() -> str:
    """Directed broadcast address of the first LAN interface, else the limited broadcast."""
    found = _first_lan_interface()
    if not found:
        return LIMITED_BROADCAST
    address, netmask = found
    try:
        network = ipaddress.IPv4Network(f"{address}/{netmask}", strict=False)
    except ValueError as e:
        logger.warning("Bad interface netmask %s for %s: %s", netmask, address, e)
        return LIMITED_BROADCAST
    return str(network.broadcast_address)


class UdpBroadcastTransport(Transport):
    """
    - rx: bound listener on `port` (every node binds the same port)
    - tx: sender with SO_BROADCAST, aimed at (broadcast_ip, port)
    """

    def __init__(self, port: int, broadcast_ip: str, bind_host: str = ""):
        self.port = port
        self.broadcast_ip = broadcast_ip
        self.bind_host = bind_host
        self._rx: Optional[socket.socket] = None
        self._tx: Optional[socket.socket] = None
        self._on_message: Optional[InboundCallback] = None
        self._listener_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(self, on_message: InboundCallback):
        if self._listener_thread and self._listener_thread.is_alive():
            logger.warning("UDP transport already started")
            return

        self._on_message = on_message
        self._stop_event.clear()
        rx = tx = None
        try:
            rx = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            rx.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            rx.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                try:
                    rx.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError:
                    pass
            rx.bind((self.bind_host, self.port))
            rx.settimeout(1.0)  # Allow periodic checks of stop event

            tx = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            tx.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        except OSError as e:
            for sock in (rx, tx):
                if sock is not None:
                    sock.close()
            raise TransportBindError(
                f"Could not bind UDP listener on port {self.port}: {e}"
            ) from e

        self._rx = rx
        # Port 0 means ephemeral; peers must then share the bound port.
        self.port = rx.getsockname()[1]
        self._tx = tx

        self._listener_thread = threading.Thread(
            target=self._listen, daemon=True, name=f"UdpListener-{self.port}"
        )
        self._listener_thread.start()
        logger.info("Started UDP server on port %s (broadcast %s)", self.port, self.broadcast_ip)

    def _listen(self):
        while not self._stop_event.is_set():
            try:
                data, addr = self._rx.recvfrom(MAX_DATAGRAM_BYTES)
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop_event.is_set():
                    logger.error(f"UDP socket listener error: {e}")
                break

            logger.debug("Received UDP message from %s:%s (%d bytes)", addr[0], addr[1], len(data))
            try:
                self._on_message(data, addr)
            except Exception as e:
                logger.error(f"Error handling UDP message from {addr[0]}: {e}", exc_info=True)

    def broadcast(self, payload: bytes):
        if self._tx is None:
            logger.warning("UDP broadcast skipped: transport not started")
            return
        try:
            self._tx.sendto(payload, (self.broadcast_ip, self.port))
        except OSError as e:
            logger.warning(f"UDP broadcast to {self.broadcast_ip}:{self.port} failed: {e}")

    def close(self):
        self._stop_event.set()
        if self._listener_thread and self._listener_thread is not threading.current_thread():
            self._listener_thread.join(timeout=2.0)
        for sock in (self._rx, self._tx):
            if sock is None:
                continue
            try:
                sock.close()
            except OSError as e:
                logger.debug(f"Error closing UDP socket: {e}")
        self._rx = None
        self._tx = None
        logger.info("Shut down UDP server on port %s", self.port)
