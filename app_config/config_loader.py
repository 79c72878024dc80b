from __future__ import annotations

import configparser
import os
import socket
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_COMM_PORT = 3014
DEFAULT_HEARTBEAT_FREQ = 20.0
DEFAULT_CHECK_BEATS = 3

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ClusterCfg:
    comm_port: int = DEFAULT_COMM_PORT
    heartbeat_freq: float = DEFAULT_HEARTBEAT_FREQ
    check_beats: int = DEFAULT_CHECK_BEATS
    exit_on_conflict: bool = False
    broadcast_ip: Optional[str] = None

    @property
    def tock_interval(self) -> float:
        return self.heartbeat_freq * self.check_beats

    @property
    def dead_after(self) -> float:
        """Seconds of silence after which a peer is pruned."""
        return self.heartbeat_freq * self.check_beats


@dataclass(frozen=True)
class NodeCfg:
    hostname: str
    ip: Optional[str] = None
    eligible: bool = True


class ConfigError(Exception):
    pass


def _parse_bool(key: str, raw: str) -> bool:
    value = str(raw).strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{key}: expected a boolean, got {raw!r}")


def _parse_number(key: str, raw: str, kind):
    try:
        return kind(str(raw).strip())
    except ValueError as e:
        raise ConfigError(f"{key}: expected {kind.__name__}, got {raw!r}") from e


class Config:
    """
    Loads the cluster configuration from an optional INI file, with
    environment variables taking precedence over file values.

    [cluster]: comm_port, heartbeat_freq, check_beats, exit_on_conflict, broadcast_ip
    [node]:    hostname, ip, eligible
    """

    ENV_KEYS = {
        ("cluster", "comm_port"): "CLUSTER_COMM_PORT",
        ("cluster", "heartbeat_freq"): "CLUSTER_HEARTBEAT_FREQ",
        ("cluster", "check_beats"): "CLUSTER_CHECK_BEATS",
        ("cluster", "exit_on_conflict"): "CLUSTER_EXIT_ON_CONFLICT",
        ("cluster", "broadcast_ip"): "CLUSTER_BROADCAST_IP",
        ("node", "hostname"): "NODE_HOSTNAME",
        ("node", "ip"): "NODE_IP",
        ("node", "eligible"): "NODE_ELIGIBLE",
    }

    def __init__(self, ini_path: Optional[str] = None, env: Optional[Mapping[str, str]] = None):
        self._env = os.environ if env is None else env
        self._cp = configparser.ConfigParser()
        self._path: Optional[str] = None

        if ini_path:
            self._path = os.path.abspath(ini_path)
            if not os.path.exists(self._path):
                raise ConfigError(f"INI file not found: {self._path}")
            try:
                self._cp.read(self._path)
            except configparser.Error as e:
                raise ConfigError(f"Malformed INI file {self._path}: {e}") from e

        comm_port = _parse_number("comm_port", self._get("cluster", "comm_port", DEFAULT_COMM_PORT), int)
        heartbeat_freq = _parse_number(
            "heartbeat_freq", self._get("cluster", "heartbeat_freq", DEFAULT_HEARTBEAT_FREQ), float
        )
        check_beats = _parse_number("check_beats", self._get("cluster", "check_beats", DEFAULT_CHECK_BEATS), int)
        exit_on_conflict = _parse_bool("exit_on_conflict", self._get("cluster", "exit_on_conflict", "false"))
        broadcast_ip = self._get("cluster", "broadcast_ip", "").strip() or None

        if not 0 <= comm_port <= 65535:
            raise ConfigError(f"comm_port out of range: {comm_port}")
        if heartbeat_freq <= 0:
            raise ConfigError(f"heartbeat_freq must be positive, got {heartbeat_freq}")
        if check_beats < 1:
            raise ConfigError(f"check_beats must be at least 1, got {check_beats}")

        self.cluster = ClusterCfg(
            comm_port=comm_port,
            heartbeat_freq=heartbeat_freq,
            check_beats=check_beats,
            exit_on_conflict=exit_on_conflict,
            broadcast_ip=broadcast_ip,
        )

        hostname = self._get("node", "hostname", "").strip() or socket.gethostname()
        self.node = NodeCfg(
            hostname=hostname,
            ip=self._get("node", "ip", "").strip() or None,
            eligible=_parse_bool("eligible", self._get("node", "eligible", "true")),
        )

    @property
    def path(self) -> Optional[str]:
        return self._path

    def _get(self, section: str, key: str, default):
        env_key = self.ENV_KEYS.get((section, key))
        if env_key and self._env.get(env_key) not in (None, ""):
            return self._env[env_key]
        return self._cp.get(section, key, fallback=default)
