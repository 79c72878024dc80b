#!/usr/bin/env python3
from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import signal
import sys
import threading
from typing import Optional

from app_config.config_loader import Config, ConfigError
from leader_election import ClusterEvent, ClusterManager, EventKind
from middleware import TransportBindError, UdpBroadcastTransport, calc_broadcast_ip, detect_lan_ip

_LOG_FMT = "%(asctime)s %(levelname)-8s [cluster-node] %(name)s: %(message)s"


def init_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_LOG_FMT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="LAN cluster node with master election")
    p.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to cluster.ini (default: $CONFIG_PATH or ./cluster.ini if present)",
    )
    p.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    p.add_argument("--hostname", default=None, help="Override the node hostname")
    p.add_argument(
        "--ineligible",
        action="store_true",
        help="Never become master (standby-only node)",
    )
    return p.parse_args(argv)


def resolve_config_path(explicit: Optional[str] = None) -> Optional[str]:
    """Explicit path wins; otherwise the first existing candidate, or None."""
    if explicit:
        return explicit
    env_cfg_path = os.getenv("CONFIG_PATH")
    if env_cfg_path:
        return env_cfg_path
    for path in ("./cluster.ini", "/config/cluster.ini"):
        if os.path.exists(path):
            return os.path.abspath(path)
    return None


def log_cluster_event(event: ClusterEvent):
    log = logging.getLogger("cluster-node")
    if event.kind is EventKind.MASTER:
        log.info("This node is now the cluster master")
    elif event.kind is EventKind.SLAVE:
        log.info("This node is now a slave")
    elif event.kind is EventKind.ADD_SERVER:
        log.info("Server joined: %s (%s)", event.record.hostname, event.record.address)
    elif event.kind is EventKind.DELETE_SERVER:
        log.info("Server left: %s", event.record.hostname)


def build_manager(cfg: Config, stop_event: threading.Event) -> ClusterManager:
    node = cfg.node
    if not node.ip:
        node = dataclasses.replace(node, ip=detect_lan_ip())

    broadcast_ip = cfg.cluster.broadcast_ip or calc_broadcast_ip()
    logging.getLogger("cluster-node").info("Using broadcast IP: %s", broadcast_ip)

    transport = UdpBroadcastTransport(cfg.cluster.comm_port, broadcast_ip)
    manager = ClusterManager(
        cfg.cluster,
        node,
        transport,
        on_shutdown_request=stop_event.set,
    )
    manager.subscribe(log_cluster_event)
    return manager


def main(argv=None):
    args = parse_args(argv)
    init_logging(args.log_level)
    log = logging.getLogger("cluster-node")

    env = dict(os.environ)
    if args.hostname:
        env["NODE_HOSTNAME"] = args.hostname
    if args.ineligible:
        env["NODE_ELIGIBLE"] = "false"

    cfg_path = resolve_config_path(args.config)
    try:
        cfg = Config(cfg_path, env=env)
    except ConfigError as e:
        log.error("Could not load config: %s", e)
        sys.exit(2)
    log.info("Using config: %s", cfg.path or "<defaults>")

    stop_event = threading.Event()

    def shutdown_handler(*_):
        log.info("Shutdown signal received. Initiating graceful shutdown...")
        stop_event.set()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    manager = build_manager(cfg, stop_event)
    try:
        manager.start()
    except TransportBindError as e:
        log.critical("Cluster listener failed to start, aborting: %s", e)
        sys.exit(1)

    exit_code = 0
    try:
        log.info("Cluster node %s is running. Press Ctrl+C to exit.", manager.hostname)
        stop_event.wait()
        if manager.shutdown_requested.is_set():
            log.critical("Exiting due to master conflict")
            exit_code = 1
    finally:
        manager.shutdown()
        log.info("Graceful shutdown complete. Exiting.")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
