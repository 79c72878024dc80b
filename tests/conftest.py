import json

import pytest  # type: ignore[import-not-found]

from app_config.config_loader import ClusterCfg, NodeCfg
from leader_election import ClusterManager
from middleware.transport import Transport


# ---------- fakes ----------
class FakeClock:
    def __init__(self, start=1000.0):
        self.now = float(start)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeTransport(Transport):
    """Records broadcasts; delivers them to a FakeNetwork if attached."""

    def __init__(self, network=None, address="10.0.0.1"):
        self.network = network
        self.address = address
        self.sent = []
        self.on_message = None
        self.started = False
        self.closed = False

    def start(self, on_message):
        self.on_message = on_message
        self.started = True
        if self.network is not None:
            self.network.attach(self)

    def broadcast(self, payload: bytes):
        self.sent.append(payload)
        if self.network is not None and not self.closed:
            self.network.send(self, payload)

    def close(self):
        self.closed = True
        if self.network is not None:
            self.network.detach(self)

    def deliver(self, payload, sender=("10.0.0.99", 3014)):
        self.on_message(payload, sender)

    def messages(self):
        return [json.loads(raw) for raw in self.sent]

    def last_message(self):
        return json.loads(self.sent[-1])


class FakeNetwork:
    """
    In-memory broadcast segment. Every attached transport hears every
    datagram, itself included, once `deliver_all` is called.
    """

    def __init__(self):
        self.transports = []
        self.partitioned = set()
        self.in_flight = []

    def attach(self, transport):
        self.transports.append(transport)

    def detach(self, transport):
        if transport in self.transports:
            self.transports.remove(transport)

    def send(self, sender, payload):
        if sender in self.partitioned:
            return
        self.in_flight.append((sender, payload))

    def deliver_all(self):
        while self.in_flight:
            sender, payload = self.in_flight.pop(0)
            if sender in self.partitioned:
                continue
            for t in list(self.transports):
                if t in self.partitioned:
                    continue
                t.on_message(payload, (sender.address, 3014))


def heartbeat(hostname, master=0, eligible=1, ip="10.0.0.50", uptime=5, data=None):
    body = {
        "action": "heartbeat",
        "hostname": hostname,
        "ip": ip,
        "master": master,
        "eligible": eligible,
        "uptime": uptime,
        "data": data if data is not None else {},
    }
    return (json.dumps(body) + "\n").encode("utf-8")


def shutdown_notice(hostname):
    return (json.dumps({"action": "shutdown", "hostname": hostname}) + "\n").encode("utf-8")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def make_manager(clock):
    """Builds a started manager on a fake transport. Tests call tick/tock directly;
    the timer threads run at heartbeat_freq and never fire within a test."""
    created = []

    def factory(
        hostname="node-b",
        eligible=True,
        exit_on_conflict=False,
        network=None,
        heartbeat_freq=20.0,
        check_beats=3,
        on_shutdown_request=None,
        start=True,
    ):
        cluster = ClusterCfg(
            comm_port=3014,
            heartbeat_freq=heartbeat_freq,
            check_beats=check_beats,
            exit_on_conflict=exit_on_conflict,
        )
        node = NodeCfg(hostname=hostname, ip=f"10.0.0.{len(created) + 1}", eligible=eligible)
        transport = FakeTransport(network=network, address=node.ip)
        manager = ClusterManager(
            cluster, node, transport, clock=clock, on_shutdown_request=on_shutdown_request
        )
        if start:
            manager.start()
        created.append(manager)
        return manager

    yield factory

    for manager in created:
        manager.shutdown()
