#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict

from app_config.config_loader import Config, ConfigError


def _die(msg: str, code: int = 2):
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(code)


def _read_cluster(cfg: Config):
    c = cfg.cluster
    return {
        "comm_port": c.comm_port,
        "heartbeat_freq": c.heartbeat_freq,
        "check_beats": c.check_beats,
        "exit_on_conflict": c.exit_on_conflict,
        "broadcast_ip": c.broadcast_ip or "",
        "dead_after": c.dead_after,
    }


def cmd_cluster(cfg: Config, fmt: str):
    c = _read_cluster(cfg)
    if fmt == "plain":
        print(
            c["comm_port"],
            c["heartbeat_freq"],
            c["check_beats"],
            int(c["exit_on_conflict"]),
            c["broadcast_ip"] or "-",
        )
    elif fmt == "env":
        print(f"CLUSTER_COMM_PORT={c['comm_port']}")
        print(f"CLUSTER_HEARTBEAT_FREQ={c['heartbeat_freq']}")
        print(f"CLUSTER_CHECK_BEATS={c['check_beats']}")
        print(f"CLUSTER_EXIT_ON_CONFLICT={'true' if c['exit_on_conflict'] else 'false'}")
        print(f"CLUSTER_BROADCAST_IP={c['broadcast_ip']}")
    elif fmt == "json":
        print(json.dumps(c, separators=(",", ":"), ensure_ascii=False))
    else:
        _die(f"unknown format: {fmt}")


def cmd_node(cfg: Config, fmt: str):
    n = asdict(cfg.node)
    if fmt == "env":
        print(f"NODE_HOSTNAME={n['hostname']}")
        print(f"NODE_IP={n['ip'] or ''}")
        print(f"NODE_ELIGIBLE={'true' if n['eligible'] else 'false'}")
    elif fmt == "json":
        print(json.dumps(n, separators=(",", ":"), ensure_ascii=False))
    else:
        _die(f"unknown format: {fmt}")


def main(argv=None):
    p = argparse.ArgumentParser(
        description="Tiny config subscript for bash/docker-compose"
    )
    p.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to INI file (default: built-in defaults plus environment)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    spc = sub.add_parser("cluster", help="Print cluster timing, port and conflict policy")
    spc.add_argument("--format", choices=["plain", "env", "json"], default="env")

    spn = sub.add_parser("node", help="Print local node identity")
    spn.add_argument("--format", choices=["env", "json"], default="env")

    args = p.parse_args(argv)
    try:
        cfg = Config(args.config)
    except ConfigError as e:
        _die(str(e))

    if args.cmd == "cluster":
        cmd_cluster(cfg, args.format)
    elif args.cmd == "node":
        cmd_node(cfg, args.format)
    else:
        _die(f"unknown command: {args.cmd}")


if __name__ == "__main__":
    main()
