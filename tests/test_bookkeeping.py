"""
Tests for the project and deployment repositories.
"""
import pytest

from tenant_store.bookkeeping import DEFAULT_PLATFORM, DEFAULT_PROMPT, DeploymentRepository, ProjectRepository


@pytest.fixture
def projects(offline_store) -> ProjectRepository:
    return ProjectRepository(offline_store)


@pytest.fixture
def deployments(offline_store) -> DeploymentRepository:
    return DeploymentRepository(offline_store)


class TestProjectRepository:
    async def test_create_fills_defaults(self, projects):
        project = await projects.create()

        assert project["id"] == 1
        assert project["prompt"] == DEFAULT_PROMPT
        assert project["deployment_platform"] == DEFAULT_PLATFORM
        assert project["name"].startswith("Project ")
        assert project["created_at"]

    async def test_slug_becomes_name(self, projects):
        project = await projects.create(project_id="project_1741392173495", prompt="todo api")
        assert project["name"] == "project_1741392173495"
        assert project["id"] == 1

    async def test_get_by_id_or_name(self, projects):
        created = await projects.create(name="project_abc")
        assert await projects.get(created["id"]) == created
        assert await projects.get(str(created["id"])) == created
        assert await projects.get("project_abc") == created
        assert await projects.get("missing") is None

    async def test_list_newest_first(self, projects):
        await projects.create(name="old", created_at="2024-01-01T00:00:00+00:00")
        await projects.create(name="new", created_at="2024-06-01T00:00:00+00:00")
        assert [p["name"] for p in await projects.list()] == ["new", "old"]

    async def test_update_stamps_updated_at(self, projects):
        await projects.create(name="project_abc")
        updated = await projects.update("project_abc", {"prompt": "blog api"})
        assert updated["prompt"] == "blog api"
        assert updated["updated_at"]

    async def test_update_missing(self, projects):
        assert await projects.update(99, {"prompt": "x"}) is None

    async def test_attach_deployment(self, projects):
        await projects.create(name="p")
        updated = await projects.attach_deployment(1, {"deployment_id": "dep_1", "url": "https://p.netlify.app"})
        assert updated["deployment_id"] == "dep_1"
        assert updated["deployment_url"] == "https://p.netlify.app"

    async def test_delete(self, projects):
        await projects.create(name="p")
        assert len(await projects.delete(1)) == 1
        assert await projects.get(1) is None

    async def test_projects_are_global(self, offline_store, projects):
        await projects.create(name="p")
        assert len(await offline_store.query("projects", tenant=123)) == 1


class TestDeploymentRepository:
    async def test_record_defaults(self, deployments):
        record = await deployments.record("5", "dep_1")

        assert record["project_id"] == 5
        assert record["platform"] == DEFAULT_PLATFORM
        assert record["status"] == "pending"
        assert record["is_rollback"] is False
        assert record["rolled_back_from"] is None

    async def test_for_project_newest_first(self, deployments):
        await deployments.record(1, "a", timestamp="2024-01-01T00:00:00+00:00")
        await deployments.record(1, "b", timestamp="2024-02-01T00:00:00+00:00")
        await deployments.record(2, "c")

        assert [d["deployment_id"] for d in await deployments.for_project(1)] == ["b", "a"]
        assert (await deployments.latest(1))["deployment_id"] == "b"
        assert await deployments.latest(3) is None

    async def test_update_status(self, deployments):
        await deployments.record(1, "dep_1")
        rows = await deployments.update_status("dep_1", "completed", "done", url="https://x.app")
        assert rows[0]["status"] == "completed"
        assert rows[0]["url"] == "https://x.app"

    async def test_rollback_target(self, deployments):
        await deployments.record(1, "a", status="completed", timestamp="2024-01-01T00:00:00+00:00")
        assert await deployments.rollback_target(1) is None

        await deployments.record(1, "b", status="completed", timestamp="2024-02-01T00:00:00+00:00")
        await deployments.record(1, "c", status="failed", timestamp="2024-03-01T00:00:00+00:00")
        assert (await deployments.rollback_target(1))["deployment_id"] == "a"

    async def test_record_rollback(self, deployments):
        record = await deployments.record_rollback(1, "dep_2", rolled_back_from="dep_1")
        assert record["is_rollback"] is True
        assert record["rolled_back_from"] == "dep_1"
        assert record["status"] == "completed"
