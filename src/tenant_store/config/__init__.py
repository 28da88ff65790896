"""
Configuration system for tenant-store.

This package provides typed configuration classes with:
- Dataclass-based settings with validation
- Environment variable loading
- YAML/TOML file loading
- Sensible defaults with override capability
"""

from .base import LogFormat, LogLevel
from .logging import LoggingConfig
from .remote import IdentifierConfig, RemoteConfig, ResilienceConfig
from .settings import Settings, configure, get_settings, load_env

__all__ = [
    # Types
    "LogLevel",
    "LogFormat",
    # Sections
    "RemoteConfig",
    "ResilienceConfig",
    "IdentifierConfig",
    "LoggingConfig",
    # Master config
    "Settings",
    # Global functions
    "get_settings",
    "configure",
    "load_env",
]
