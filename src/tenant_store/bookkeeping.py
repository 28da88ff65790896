"""
Repositories over the two global bookkeeping tables, ``projects`` and
``deployments``.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from .types import Record

if TYPE_CHECKING:
    from .store import TenantStore

DEFAULT_PROMPT = "No prompt provided"
DEFAULT_PLATFORM = "netlify"


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first(rows: list[Record]) -> Record | None:
    return rows[0] if rows else None


class ProjectRepository:
    """Projects are addressed by numeric id or by their slug (``name``)."""

    table = "projects"

    def __init__(self, store: TenantStore) -> None:
        self.store = store

    def _where(self, ref: Any) -> dict[str, Any]:
        ids = self.store.identifiers
        if ids.is_numeric(ref):
            return {ids.id_column: ids.coerce(ref)}
        return {ids.name_column: ref}

    async def create(
        self,
        *,
        name: str | None = None,
        prompt: str | None = None,
        project_id: str | None = None,
        deployment_platform: str | None = None,
        created_at: str | None = None,
        **fields: Any,
    ) -> Record:
        """
        Insert a project with the bookkeeping defaults filled in.

        A caller-provided slug ``project_id`` is stored as the project's name;
        the numeric id is assigned by the backend.
        """
        ids = self.store.identifiers
        data: Record = {
            **fields,
            ids.name_column: project_id or name or f"Project {ids.next_id()}",
            "prompt": prompt or DEFAULT_PROMPT,
            "deployment_platform": deployment_platform or DEFAULT_PLATFORM,
            "created_at": created_at or utcnow_iso(),
        }
        rows = await self.store.query(self.table, {"method": "insert", "data": data})
        return rows[0] if rows else data

    async def get(self, ref: Any) -> Record | None:
        return _first(await self.store.query(self.table, {"where": self._where(ref), "limit": 1}))

    async def list(self, limit: int | None = None) -> list[Record]:
        """All projects, newest first."""
        return await self.store.query(self.table, {"order_by": {"created_at": "desc"}, "limit": limit})

    async def update(self, ref: Any, changes: Mapping[str, Any]) -> Record | None:
        data = {**changes, "updated_at": utcnow_iso()}
        rows = await self.store.query(self.table, {"method": "update", "where": self._where(ref), "data": data})
        return _first(rows)

    async def delete(self, ref: Any) -> list[Record]:
        return await self.store.query(self.table, {"method": "delete", "where": self._where(ref)})

    async def attach_deployment(self, ref: Any, deployment: Mapping[str, Any]) -> Record | None:
        """Copy the latest deployment's identity onto the project row."""
        return await self.update(
            ref,
            {
                "deployment_id": deployment.get("deployment_id"),
                "deployment_url": deployment.get("url"),
                "deployment_platform": deployment.get("platform") or DEFAULT_PLATFORM,
            },
        )


class DeploymentRepository:
    table = "deployments"

    def __init__(self, store: TenantStore) -> None:
        self.store = store

    async def record(
        self,
        project_id: Any,
        deployment_id: str,
        *,
        url: str | None = None,
        status: str = "pending",
        platform: str | None = None,
        timestamp: str | None = None,
        is_rollback: bool = False,
        rolled_back_from: Any = None,
        **fields: Any,
    ) -> Record:
        data: Record = {
            **fields,
            "project_id": self.store.identifiers.coerce(project_id),
            "deployment_id": deployment_id,
            "url": url,
            "status": status,
            "platform": platform or DEFAULT_PLATFORM,
            "timestamp": timestamp or utcnow_iso(),
            "is_rollback": is_rollback,
            "rolled_back_from": rolled_back_from,
        }
        rows = await self.store.query(self.table, {"method": "insert", "data": data})
        return rows[0] if rows else data

    async def update_status(
        self,
        deployment_id: str,
        status: str,
        message: str | None = None,
        url: str | None = None,
    ) -> list[Record]:
        data: Record = {"status": status, "message": message}
        if url:
            data["url"] = url
        return await self.store.query(
            self.table,
            {"method": "update", "where": {"deployment_id": deployment_id}, "data": data},
        )

    async def for_project(self, project_id: Any, *, status: str | None = None, limit: int | None = None) -> list[Record]:
        """Deployments of one project, newest first."""
        where: Record = {"project_id": self.store.identifiers.coerce(project_id)}
        if status is not None:
            where["status"] = status
        return await self.store.query(
            self.table,
            {"where": where, "order_by": {"timestamp": "desc"}, "limit": limit},
        )

    async def latest(self, project_id: Any) -> Record | None:
        return _first(await self.for_project(project_id, limit=1))

    async def rollback_target(self, project_id: Any) -> Record | None:
        """The completed deployment before the most recent one, if any."""
        completed = await self.for_project(project_id, status="completed", limit=2)
        return completed[1] if len(completed) > 1 else None

    async def record_rollback(
        self,
        project_id: Any,
        deployment_id: str,
        rolled_back_from: Any,
        **fields: Any,
    ) -> Record:
        fields.setdefault("status", "completed")
        return await self.record(
            project_id,
            deployment_id,
            is_rollback=True,
            rolled_back_from=rolled_back_from,
            **fields,
        )


__all__ = ["DEFAULT_PROMPT", "DEFAULT_PLATFORM", "ProjectRepository", "DeploymentRepository"]
