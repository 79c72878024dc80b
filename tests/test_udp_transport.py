import socket
import threading
from collections import namedtuple
from unittest.mock import patch

import pytest  # type: ignore[import-not-found]

from middleware import udp_broadcast
from middleware.transport import TransportBindError
from middleware.udp_broadcast import UdpBroadcastTransport, calc_broadcast_ip, detect_lan_ip

Snic = namedtuple("Snic", "family address netmask broadcast ptp")


def fake_ifaces(**ifaces):
    return {name: addrs for name, addrs in ifaces.items()}


def test_broadcast_ip_from_first_lan_interface():
    ifaces = fake_ifaces(
        lo=[Snic(socket.AF_INET, "127.0.0.1", "255.0.0.0", None, None)],
        eth0=[
            Snic(socket.AF_INET6, "fe80::1", "ffff:ffff:ffff:ffff::", None, None),
            Snic(socket.AF_INET, "192.168.3.17", "255.255.252.0", None, None),
        ],
    )
    with patch.object(udp_broadcast.psutil, "net_if_addrs", return_value=ifaces):
        assert calc_broadcast_ip() == "192.168.3.255"
        assert detect_lan_ip() == "192.168.3.17"


def test_broadcast_ip_falls_back_without_lan_interface():
    ifaces = fake_ifaces(lo=[Snic(socket.AF_INET, "127.0.0.1", "255.0.0.0", None, None)])
    with patch.object(udp_broadcast.psutil, "net_if_addrs", return_value=ifaces):
        assert calc_broadcast_ip() == "255.255.255.255"
        assert detect_lan_ip() == "127.0.0.1"


def test_loopback_round_trip():
    received = []
    got = threading.Event()

    def on_message(data, addr):
        received.append((data, addr))
        got.set()

    transport = UdpBroadcastTransport(0, "127.0.0.1", bind_host="127.0.0.1")
    transport.start(on_message)
    try:
        assert transport.port != 0
        transport.broadcast(b'{"action":"shutdown","hostname":"loop"}\n')
        assert got.wait(timeout=3.0)
    finally:
        transport.close()

    data, addr = received[0]
    assert data == b'{"action":"shutdown","hostname":"loop"}\n'
    assert addr[0] == "127.0.0.1"


def test_callback_errors_do_not_kill_listener():
    calls = []
    second = threading.Event()

    def on_message(data, addr):
        calls.append(data)
        if len(calls) == 1:
            raise RuntimeError("handler bug")
        second.set()

    transport = UdpBroadcastTransport(0, "127.0.0.1", bind_host="127.0.0.1")
    transport.start(on_message)
    try:
        transport.broadcast(b"one")
        transport.broadcast(b"two")
        assert second.wait(timeout=3.0)
    finally:
        transport.close()


def test_bind_failure_raises():
    blocker = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    blocker.bind(("127.0.0.1", 0))
    port = blocker.getsockname()[1]
    try:
        transport = UdpBroadcastTransport(port, "127.0.0.1", bind_host="127.0.0.1")
        with pytest.raises(TransportBindError):
            transport.start(lambda data, addr: None)
    finally:
        blocker.close()


def test_broadcast_before_start_is_noop():
    transport = UdpBroadcastTransport(0, "127.0.0.1")
    transport.broadcast(b"ignored")
    transport.close()


def test_send_socket_failure_releases_receive_socket():
    real_socket = socket.socket
    created = []

    def socket_factory(*args, **kwargs):
        if created:
            raise OSError("no buffer space available")
        sock = real_socket(*args, **kwargs)
        created.append(sock)
        return sock

    transport = UdpBroadcastTransport(0, "127.0.0.1", bind_host="127.0.0.1")
    with patch.object(udp_broadcast.socket, "socket", side_effect=socket_factory):
        with pytest.raises(TransportBindError):
            transport.start(lambda data, addr: None)

    assert len(created) == 1
    assert created[0].fileno() == -1
