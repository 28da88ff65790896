"""
Top-level package for tenant-store.

Environment variables are loaded from the nearest `.env` so that
``SUPABASE_URL`` / ``SUPABASE_KEY`` are picked up on import.
"""
from dotenv import find_dotenv, load_dotenv

# Keep side effect so remote credentials are loaded on import.
_ = load_dotenv(find_dotenv(usecwd=True), override=False)

from .bookkeeping import DeploymentRepository, ProjectRepository
from .config import Settings, configure, get_settings
from .errors import (
    BackendUnavailableError,
    RecordNotFoundError,
    RecordValidationError,
    RemoteBackendError,
    SchemaDriftError,
    TenantStoreError,
    TransientBackendError,
    TypeMismatchError,
    UnsupportedOperationError,
)
from .factory import build_store
from .memory import FallbackStore
from .remote import RemoteExecutor
from .resources import ResourceService
from .routing import TenantRouter
from .store import TenantStore
from .types import (
    Column,
    Method,
    OrderBy,
    Placement,
    QueryOptions,
    Relationship,
    RelationshipKind,
    SchemaResult,
    TableDefinition,
)

__all__ = [
    "TenantStore",
    "build_store",
    "FallbackStore",
    "RemoteExecutor",
    "TenantRouter",
    "ProjectRepository",
    "DeploymentRepository",
    "ResourceService",
    "Settings",
    "configure",
    "get_settings",
    "Column",
    "Method",
    "OrderBy",
    "Placement",
    "QueryOptions",
    "Relationship",
    "RelationshipKind",
    "SchemaResult",
    "TableDefinition",
    "TenantStoreError",
    "RemoteBackendError",
    "TransientBackendError",
    "SchemaDriftError",
    "TypeMismatchError",
    "BackendUnavailableError",
    "RecordNotFoundError",
    "RecordValidationError",
    "UnsupportedOperationError",
]
