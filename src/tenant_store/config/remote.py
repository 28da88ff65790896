"""
Remote backend configuration classes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass
class RemoteConfig:
    """Configuration for the PostgREST-compatible remote backend."""

    # Connection
    url: str | None = field(default_factory=lambda: os.getenv("SUPABASE_URL"))
    api_key: str | None = field(default_factory=lambda: os.getenv("SUPABASE_KEY"))
    rest_path: str = "/rest/v1"
    rpc_function: str = "execute_sql"

    # Request settings
    timeout: float = 10.0
    default_page_size: int = 10

    # Namespacing
    schema_prefix: str = "tenant_"
    global_schema: str = "public"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.default_page_size <= 0:
            raise ValueError("default_page_size must be positive")
        if self.url and not self.url.startswith(("http://", "https://")):
            raise ValueError("url must be a valid HTTP(S) URL")
        if not self.schema_prefix:
            raise ValueError("schema_prefix cannot be empty")

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)


@dataclass
class ResilienceConfig:
    """Circuit breaker settings guarding the remote backend."""

    enabled: bool = True
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    half_open_successes: int = 2

    def __post_init__(self):
        if self.failure_threshold <= 0:
            raise ValueError("failure_threshold must be positive")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_successes <= 0:
            raise ValueError("half_open_successes must be positive")


@dataclass
class IdentifierConfig:
    """Columns used by the identifier normalization policy."""

    id_column: str = "id"
    name_column: str = "name"

    def __post_init__(self):
        if not self.id_column or not self.name_column:
            raise ValueError("id_column and name_column are required")
        if self.id_column == self.name_column:
            raise ValueError("id_column and name_column must differ")


__all__ = ["RemoteConfig", "ResilienceConfig", "IdentifierConfig"]
