"""
Tests for tenant routing and namespace provisioning.
"""
import asyncio

from tenant_store.errors import AlreadyExistsError, BackendUnavailableError, TransientBackendError
from tenant_store.routing import TenantRouter
from tenant_store.types import Placement


class TestResolve:
    def test_tenant_table(self):
        router = TenantRouter()
        assert router.resolve("books", 42) == Placement("tenant_42", False)

    def test_global_tables_ignore_tenant(self):
        router = TenantRouter()
        assert router.resolve("projects", 42) == Placement("public", True)
        assert router.resolve("deployments", "abc") == Placement("public", True)

    def test_no_tenant_is_global(self):
        router = TenantRouter()
        assert router.resolve("books") == Placement("public", True)
        assert router.resolve("books", "") == Placement("public", True)

    def test_custom_prefix_and_global(self):
        router = TenantRouter(prefix="project_", global_namespace="shared")
        assert router.resolve("books", 7).namespace == "project_7"
        assert router.resolve("projects", 7).namespace == "shared"

    def test_unsafe_tenant_is_hashed(self):
        router = TenantRouter()
        namespace = router.namespace_for("acme; drop schema public")
        assert namespace.startswith("tenant_")
        assert len(namespace) == len("tenant_") + 16
        assert namespace == router.namespace_for("acme; drop schema public")

    def test_distinct_tenants_distinct_namespaces(self):
        router = TenantRouter()
        assert router.namespace_for("a-b") != router.namespace_for("a_b")


class TestEnsureNamespace:
    async def test_creates_once(self, fake_remote):
        router = TenantRouter(fake_remote)
        placement = router.resolve("books", 1)

        assert (await router.ensure_namespace(placement)).ok
        assert (await router.ensure_namespace(placement)).ok
        assert fake_remote.statements == ["CREATE SCHEMA IF NOT EXISTS tenant_1"]
        assert router.is_ensured("tenant_1")

    async def test_global_needs_nothing(self, fake_remote):
        router = TenantRouter(fake_remote)
        assert (await router.ensure_namespace(router.resolve("projects", 1))).ok
        assert fake_remote.statements == []

    async def test_already_exists_is_success(self, fake_remote):
        fake_remote.statement_failures.append(AlreadyExistsError('schema "tenant_1" already exists'))
        router = TenantRouter(fake_remote)
        assert (await router.ensure_namespace(Placement("tenant_1", False))).ok
        assert router.is_ensured("tenant_1")

    async def test_failure_is_returned_and_not_cached(self, fake_remote):
        fake_remote.statement_failures.append(TransientBackendError())
        router = TenantRouter(fake_remote)
        placement = Placement("tenant_1", False)

        result = await router.ensure_namespace(placement)
        assert isinstance(result.error, TransientBackendError)
        assert not router.is_ensured("tenant_1")

        assert (await router.ensure_namespace(placement)).ok
        assert len(fake_remote.statements) == 2

    async def test_without_remote(self):
        result = await TenantRouter().ensure_namespace(Placement("tenant_1", False))
        assert isinstance(result.error, BackendUnavailableError)

    async def test_concurrent_callers_issue_one_statement(self, fake_remote):
        router = TenantRouter(fake_remote)
        placement = Placement("tenant_9", False)
        results = await asyncio.gather(*(router.ensure_namespace(placement) for _ in range(5)))
        assert all(r.ok for r in results)
        assert len(fake_remote.statements) == 1

    async def test_forget(self, fake_remote):
        router = TenantRouter(fake_remote)
        await router.ensure_namespace(Placement("tenant_1", False))
        router.forget("tenant_1")
        assert not router.is_ensured("tenant_1")
