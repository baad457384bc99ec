"""
Configuration management for ragbridge.
"""

from .settings import (
    ServerConfig,
    Settings,
    build_server_config,
    configure_logging,
    get_settings,
)

__all__ = [
    "ServerConfig",
    "Settings",
    "build_server_config",
    "configure_logging",
    "get_settings",
]
