"""Configuration module for cynicalclaw."""

from cynicalclaw.config.loader import load_config, get_config_path
from cynicalclaw.config.schema import AgentConfig, Config, MemoryConfig, ProvidersConfig

__all__ = [
    "Config",
    "AgentConfig",
    "MemoryConfig",
    "ProvidersConfig",
    "load_config",
    "get_config_path",
]
