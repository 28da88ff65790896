"""
Settings master configuration and global helpers.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from dotenv import find_dotenv, load_dotenv

from ..config_schema import CONFIG_SCHEMA
from ..errors import InvalidConfigError
from .logging import LoggingConfig
from .remote import IdentifierConfig, RemoteConfig, ResilienceConfig


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """
    Master configuration for tenant-store.

    Aggregates every configuration section into a single object that can
    be loaded from environment variables, files, or constructed
    programmatically.
    """

    remote: RemoteConfig = field(default_factory=RemoteConfig)
    resilience: ResilienceConfig = field(default_factory=ResilienceConfig)
    identifiers: IdentifierConfig = field(default_factory=IdentifierConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, prefix: str = "TENANT_STORE_") -> Settings:
        """
        Load settings from environment variables.

        Prefixed variables win over the bare ``SUPABASE_URL`` /
        ``SUPABASE_KEY`` pair read by ``RemoteConfig`` defaults. Every
        section is rebuilt so its validation runs on the environment values.

        Example:
            TENANT_STORE_REMOTE_URL=https://xyz.supabase.co
            TENANT_STORE_REMOTE_TIMEOUT=5
            TENANT_STORE_LOG_LEVEL=DEBUG

        Raises:
            InvalidConfigError: a variable cannot be parsed or fails validation
        """
        defaults = cls()
        variables = {
            "remote": {
                "url": ("REMOTE_URL", str),
                "api_key": ("REMOTE_API_KEY", str),
                "rpc_function": ("REMOTE_RPC_FUNCTION", str),
                "timeout": ("REMOTE_TIMEOUT", float),
                "default_page_size": ("REMOTE_PAGE_SIZE", int),
                "schema_prefix": ("SCHEMA_PREFIX", str),
                "global_schema": ("GLOBAL_SCHEMA", str),
            },
            "resilience": {
                "enabled": ("BREAKER_ENABLED", _env_bool),
                "failure_threshold": ("BREAKER_FAILURE_THRESHOLD", int),
                "recovery_timeout": ("BREAKER_RECOVERY_TIMEOUT", float),
            },
            "identifiers": {
                "id_column": ("ID_COLUMN", str),
                "name_column": ("NAME_COLUMN", str),
            },
            "logging": {
                "level": ("LOG_LEVEL", str.upper),
                "format": ("LOG_FORMAT", str.lower),
                "log_queries": ("LOG_QUERIES", _env_bool),
                "log_fallbacks": ("LOG_FALLBACKS", _env_bool),
            },
        }

        sections: dict[str, Any] = {}
        for section, fields in variables.items():
            overrides: dict[str, Any] = {}
            try:
                for name, (suffix, parse) in fields.items():
                    if value := os.getenv(f"{prefix}{suffix}"):
                        overrides[name] = parse(value)
                sections[section] = dataclasses.replace(getattr(defaults, section), **overrides)
            except ValueError as e:
                raise InvalidConfigError(str(e), field_name=section, cause=e) from e
        return cls(**sections)

    @classmethod
    def from_file(cls, path: str | Path) -> Settings:
        """
        Load settings from a YAML or TOML file.

        Args:
            path: Path to configuration file (.yaml, .yml, or .toml)

        Returns:
            Settings object with values from file
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        suffix = path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        elif suffix == ".toml":
            import tomllib

            with open(path, "rb") as f:
                data = tomllib.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {suffix}")

        return cls._from_dict(data)

    @classmethod
    def default(cls) -> Settings:
        return cls()

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Settings:
        """
        Create Settings from a dictionary.

        The input is validated against the configuration schema before
        the section dataclasses are built (which runs their own checks).
        """
        try:
            jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise InvalidConfigError(f"Configuration validation failed: {e.message}", cause=e) from e

        sections = {
            "remote": RemoteConfig,
            "resilience": ResilienceConfig,
            "identifiers": IdentifierConfig,
            "logging": LoggingConfig,
        }
        kwargs: dict[str, Any] = {}
        for name, section_cls in sections.items():
            if name in data:
                try:
                    kwargs[name] = section_cls(**data[name])
                except ValueError as e:
                    raise InvalidConfigError(str(e), field_name=name, cause=e) from e
        return cls(**kwargs)

    def to_dict(self, *, redact: bool = True) -> dict[str, Any]:
        """Convert settings to dictionary."""
        from ..logging import redact_api_key

        data = dataclasses.asdict(self)
        if redact and self.logging.redact_api_keys:
            data["remote"]["api_key"] = redact_api_key(self.remote.api_key)
        return data


# =============================================================================
# Global Settings & Helpers
# =============================================================================

_global_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it from the environment if needed."""
    global _global_settings
    if _global_settings is None:
        _global_settings = Settings.from_env()
    return _global_settings


def configure(settings: Settings | None = None, **kwargs) -> Settings:
    """
    Configure global settings.

    Args:
        settings: Settings object to use globally
        **kwargs: Override specific sections

    Returns:
        The configured Settings object
    """
    global _global_settings

    if settings is not None:
        _global_settings = settings
    elif _global_settings is None:
        _global_settings = Settings.from_env()

    for key, value in kwargs.items():
        if hasattr(_global_settings, key):
            setattr(_global_settings, key, value)

    return _global_settings


def load_env(path: str | None = None, *, override: bool = False) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        path: Optional path to a .env file. If not provided, uses find_dotenv().
        override: Whether to override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    env_path = path or find_dotenv(usecwd=True)
    if not env_path:
        return False
    return load_dotenv(env_path, override=override)


__all__ = ["Settings", "get_settings", "configure", "load_env"]
