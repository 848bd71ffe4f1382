"""
Engine Configuration Module

Provides centralized configuration management for the authorization engine.
"""

from .schema import EngineConfig, WebConfig, GrantConfig, ControllerConfig, PluginConfig
from .loader import load_config, load_config_from_file

__all__ = [
    "EngineConfig",
    "WebConfig",
    "GrantConfig",
    "ControllerConfig",
    "PluginConfig",
    "load_config",
    "load_config_from_file",
]
