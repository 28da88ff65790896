"""
Store factory: wires settings into a ready-to-use ``TenantStore``.
"""

from __future__ import annotations

from .config import Settings, get_settings
from .healing import HealingPolicy
from .identifiers import IdentifierPolicy
from .logging import configure_logging
from .memory import FallbackStore
from .remote import RemoteExecutor
from .resilience import CircuitBreaker
from .routing import TenantRouter
from .store import TenantStore


def build_store(settings: Settings | None = None, *, fallback: FallbackStore | None = None) -> TenantStore:
    """
    Build a store from ``settings`` (the global settings by default).

    Without a remote URL and API key the store runs on the fallback store
    alone. The package default logger is reconfigured from the logging
    settings and shared with the store.
    """
    settings = settings or get_settings()
    remote_cfg = settings.remote

    remote = RemoteExecutor(remote_cfg) if remote_cfg.configured else None
    router = TenantRouter(
        remote,
        prefix=remote_cfg.schema_prefix,
        global_namespace=remote_cfg.global_schema,
    )
    logger = configure_logging(
        level=settings.logging.level,
        json_output=settings.logging.format == "json",
        log_queries=settings.logging.log_queries,
        log_fallbacks=settings.logging.log_fallbacks,
    )
    return TenantStore(
        remote,
        fallback or FallbackStore(default_page_size=remote_cfg.default_page_size),
        router=router,
        healing=HealingPolicy(IdentifierPolicy(settings.identifiers)),
        breaker=CircuitBreaker(settings.resilience),
        logger=logger,
    )


__all__ = ["build_store"]
