from .config_loader import ClusterCfg, Config, ConfigError, NodeCfg

__all__ = ["ClusterCfg", "Config", "ConfigError", "NodeCfg"]
