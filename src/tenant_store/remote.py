"""
Remote executor for PostgREST-compatible backends (Supabase and friends).

Every call returns a ``QueryResult``; transport and backend failures are
mapped onto the error taxonomy instead of being raised so the facade can
decide between healing, falling back and giving up.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

import aiohttp

from .config import RemoteConfig
from .errors import (
    BackendUnavailableError,
    ErrorContext,
    TenantStoreError,
    error_from_exception,
    error_from_response,
)
from .logging import truncate_for_log
from .types import Filter, Method, Placement, QueryOptions, QueryResult, Record

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(payload: Any) -> str:
    return json.dumps(payload, default=_json_default)


def filter_value(value: Any) -> str:
    """Render one equality condition in PostgREST's operator syntax."""
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{'true' if value else 'false'}"
    if isinstance(value, (datetime, date, time)):
        return f"eq.{value.isoformat()}"
    return f"eq.{value}"


def filter_params(where: Filter) -> list[tuple[str, str]]:
    return [(column, filter_value(value)) for column, value in where]


class RemoteExecutor:
    """
    Thin asynchronous client over the PostgREST table API and the DDL RPC.

    Tenant schemas are selected per request with the ``Accept-Profile`` /
    ``Content-Profile`` headers, so every tenant namespace must be listed
    in the backend's exposed schemas.
    """

    def __init__(
        self,
        config: RemoteConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.config = config or RemoteConfig()
        self._session = session
        self._owns_session = session is None
        self._session_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return self.config.configured

    @property
    def base_url(self) -> str:
        return f"{(self.config.url or '').rstrip('/')}{self.config.rest_path}"

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.config.timeout)
                )
                self._owns_session = True
            return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self, namespace: str | None = None, *, write: bool = False) -> dict[str, str]:
        h = {
            "apikey": self.config.api_key or "",
            "Authorization": f"Bearer {self.config.api_key or ''}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if namespace:
            h["Accept-Profile"] = namespace
            if write:
                h["Content-Profile"] = namespace
        if write:
            h["Prefer"] = "return=representation"
        return h

    async def _request(
        self,
        method: str,
        url: str,
        *,
        context: ErrorContext,
        headers: dict[str, str],
        params: list[tuple[str, str]] | None = None,
        payload: Any = None,
    ) -> tuple[int, Any] | TenantStoreError:
        logger.debug("%s %s params=%s", method, url, params)
        status: int | None = None
        try:
            data = dumps(payload) if payload is not None else None
            session = await self._get_session()
            async with session.request(method, url, params=params, data=data, headers=headers) as r:
                status = r.status
                text = await r.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            error = error_from_exception(e, context=context)
            logger.debug("%s %s failed: %s", method, url, error)
            return error
        except Exception as e:
            # Undecodable bodies keep the meaning of their status code.
            logger.debug("%s %s failed: %s: %s", method, url, type(e).__name__, e)
            if status is not None and status >= 400:
                return error_from_response(status, None, context=context)
            return error_from_exception(e, context=context)

        try:
            body = json.loads(text) if text.strip() else None
        except ValueError:
            body = text

        if status >= 400:
            logger.debug("%s %s -> %s %s", method, url, status, truncate_for_log(text))
            return error_from_response(status, body, context=context)
        return status, body

    @staticmethod
    def _rows(body: Any) -> list[Record]:
        if body is None:
            return []
        if isinstance(body, list):
            return [dict(row) for row in body if isinstance(row, dict)]
        if isinstance(body, dict):
            return [dict(body)]
        return []

    def _context(self, placement: Placement, table: str, method: Method) -> ErrorContext:
        return ErrorContext(namespace=placement.namespace, table=table, method=method.value)

    async def _table_call(
        self,
        http_method: str,
        placement: Placement,
        table: str,
        method: Method,
        *,
        params: list[tuple[str, str]],
        payload: Any = None,
        write: bool = False,
    ) -> QueryResult:
        context = self._context(placement, table, method)
        if not self.configured:
            return QueryResult.failure(BackendUnavailableError(context=context))
        outcome = await self._request(
            http_method,
            f"{self.base_url}/{table}",
            context=context,
            headers=self._headers(placement.namespace, write=write),
            params=params,
            payload=payload,
        )
        if isinstance(outcome, TenantStoreError):
            return QueryResult.failure(outcome)
        _, body = outcome
        return QueryResult(rows=self._rows(body))

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------

    async def select(self, placement: Placement, table: str, options: QueryOptions) -> QueryResult:
        params: list[tuple[str, str]] = [("select", "*"), *filter_params(options.where)]
        if options.order_by is not None:
            params.append(("order", f"{options.order_by.column}.{options.order_by.direction}"))
        if options.offset:
            params.append(("offset", str(options.offset)))
            params.append(("limit", str(options.limit or self.config.default_page_size)))
        elif options.limit:
            params.append(("limit", str(options.limit)))
        return await self._table_call("GET", placement, table, Method.SELECT, params=params)

    async def insert(self, placement: Placement, table: str, options: QueryOptions) -> QueryResult:
        """Insert the payload rows. An empty payload inserts nothing and sends no request."""
        if not options.rows:
            return QueryResult()
        return await self._table_call(
            "POST",
            placement,
            table,
            Method.INSERT,
            params=[("select", "*")],
            payload=options.data,
            write=True,
        )

    async def update(self, placement: Placement, table: str, options: QueryOptions) -> QueryResult:
        payload: Record = {}
        for row in options.rows:
            payload.update(row)
        return await self._table_call(
            "PATCH",
            placement,
            table,
            Method.UPDATE,
            params=[("select", "*"), *filter_params(options.where)],
            payload=payload,
            write=True,
        )

    async def delete(self, placement: Placement, table: str, options: QueryOptions) -> QueryResult:
        """Delete matching rows. An empty filter deletes nothing and sends no request."""
        if not options.where:
            return QueryResult()
        return await self._table_call(
            "DELETE",
            placement,
            table,
            Method.DELETE,
            params=[("select", "*"), *filter_params(options.where)],
            write=True,
        )

    async def execute(self, placement: Placement, table: str, options: QueryOptions) -> QueryResult:
        handlers = {
            Method.SELECT: self.select,
            Method.INSERT: self.insert,
            Method.UPDATE: self.update,
            Method.DELETE: self.delete,
        }
        return await handlers[Method.parse(options.method)](placement, table, options)

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------

    async def execute_statement(self, sql: str, *, context: ErrorContext | None = None) -> QueryResult:
        """
        Run a DDL statement through the ``execute_sql`` RPC.

        The RPC reports failures in-band as ``{"success": false, "error": ...}``.
        """
        ctx = context or ErrorContext(operation="execute_statement")
        if not self.configured:
            return QueryResult.failure(BackendUnavailableError(context=ctx))
        outcome = await self._request(
            "POST",
            f"{self.base_url}/rpc/{self.config.rpc_function}",
            context=ctx,
            headers=self._headers(),
            payload={"sql": sql},
        )
        if isinstance(outcome, TenantStoreError):
            return QueryResult.failure(outcome)
        _, body = outcome
        if isinstance(body, dict) and body.get("success") is False:
            detail = body.get("error")
            if not isinstance(detail, dict):
                detail = {"error": detail or "SQL execution failed"}
            return QueryResult.failure(error_from_response(None, detail, context=ctx))
        return QueryResult()


__all__ = ["RemoteExecutor", "dumps", "filter_value", "filter_params"]
