import logging
import threading
from unittest.mock import patch

import pytest  # type: ignore[import-not-found]

from app_config.config_loader import Config
from cluster_node import main as node_main
from leader_election import ClusterEvent, EventKind, NodeRecord
from middleware import TransportBindError, UdpBroadcastTransport


def test_resolve_config_path_prefers_explicit(monkeypatch):
    monkeypatch.setenv("CONFIG_PATH", "/etc/from-env.ini")
    assert node_main.resolve_config_path("/tmp/explicit.ini") == "/tmp/explicit.ini"
    assert node_main.resolve_config_path() == "/etc/from-env.ini"


def test_resolve_config_path_without_candidates(monkeypatch, tmp_path):
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.chdir(tmp_path)
    assert node_main.resolve_config_path() is None


def test_build_manager_uses_detected_network():
    cfg = Config(None, env={"NODE_HOSTNAME": "alpha", "CLUSTER_COMM_PORT": "4100"})
    with patch.object(node_main, "calc_broadcast_ip", return_value="10.9.255.255"), patch.object(
        node_main, "detect_lan_ip", return_value="10.9.0.4"
    ):
        manager = node_main.build_manager(cfg, threading.Event())

    assert isinstance(manager.transport, UdpBroadcastTransport)
    assert manager.transport.broadcast_ip == "10.9.255.255"
    assert manager.transport.port == 4100
    assert manager.hostname == "alpha"
    assert manager.members()["alpha"].address == "10.9.0.4"


def test_fatal_conflict_sets_stop_event():
    cfg = Config(None, env={"NODE_HOSTNAME": "alpha", "CLUSTER_EXIT_ON_CONFLICT": "true", "NODE_IP": "10.0.0.1"})
    stop_event = threading.Event()
    with patch.object(node_main, "calc_broadcast_ip", return_value="127.0.0.1"):
        manager = node_main.build_manager(cfg, stop_event)

    manager.resolver.resolve("beta")

    assert stop_event.is_set()


def test_bind_failure_exits_with_status_1(monkeypatch):
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.setenv("NODE_IP", "10.0.0.1")
    monkeypatch.setenv("CLUSTER_BROADCAST_IP", "127.0.0.1")
    with patch.object(UdpBroadcastTransport, "start", side_effect=TransportBindError("in use")), patch.object(
        node_main.signal, "signal"
    ):
        with pytest.raises(SystemExit) as exc:
            node_main.main(["--hostname", "alpha"])
    assert exc.value.code == 1


def test_event_logging(caplog):
    record = NodeRecord(hostname="beta", address="10.0.0.2")
    with caplog.at_level(logging.INFO, logger="cluster-node"):
        node_main.log_cluster_event(ClusterEvent(EventKind.ADD_SERVER, record))
        node_main.log_cluster_event(ClusterEvent(EventKind.MASTER))

    assert "Server joined: beta (10.0.0.2)" in caplog.text
    assert "now the cluster master" in caplog.text
