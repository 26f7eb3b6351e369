"""Tests for API routes using httpx AsyncClient."""

from __future__ import annotations

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixwright.analysis.llm.client import AIAnalysisClient
from fixwright.analysis.llm.fakes import ScriptedBackend
from fixwright.api.app_state import AppState
from fixwright.config import Settings
from fixwright.constants import RunStatus
from fixwright.main import app
from fixwright.repositories.fakes import FakeRunRepository
from fixwright.services.orchestrator import AnalysisOrchestrator
from fixwright.services.run_state import AnalysisRun

FILES = [
    {"path": "a.py", "language": "python", "content": "x = 1\n"},
    {"path": "b.py", "language": "python", "content": "y = 2\n"},
]


@pytest.fixture
async def api(
    settings: Settings,
    client: AIAnalysisClient,
    orchestrator: AnalysisOrchestrator,
    session_factory: async_sessionmaker[AsyncSession],
):
    """Test client over fake storage and a scripted backend."""
    app.state.typed = AppState(
        settings=settings,
        session_factory=session_factory,
        client=client,
        orchestrator=orchestrator,
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test"
    ) as c:
        yield c
    await orchestrator.shutdown()


class TestHealthRoutes:
    async def test_health(self, api: AsyncClient) -> None:
        resp = await api.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert data["cache_entries"] == 0
        assert data["rate_limit_remaining"] == 1000


class TestRunRoutes:
    async def test_start_and_fetch_result(
        self,
        api: AsyncClient,
        orchestrator: AnalysisOrchestrator,
    ) -> None:
        resp = await api.post(
            "/api/projects/p1/runs", json={"files": FILES}
        )
        assert resp.status_code == 202
        body = resp.json()
        assert body["success"] is True
        run_id = body["data"]["run_id"]

        await orchestrator.wait(run_id)

        status = await api.get(f"/api/runs/{run_id}/status")
        assert status.status_code == 200
        view = status.json()["data"]
        assert view["status"] == "completed"
        assert view["progress_percent"] == 100
        assert view["estimated_time_remaining_ms"] == 0

        result = await api.get(f"/api/runs/{run_id}")
        assert result.status_code == 200
        data = result.json()["data"]
        assert data["run_id"] == run_id
        assert data["metrics"]["total_files"] == 2
        assert data["metrics"]["quality_score"] == 100

    async def test_second_run_conflicts(
        self,
        api: AsyncClient,
        backend: ScriptedBackend,
    ) -> None:
        backend.hang.update(f["path"] for f in FILES)
        first = await api.post(
            "/api/projects/p1/runs", json={"files": FILES}
        )
        run_id = first.json()["data"]["run_id"]
        await asyncio.sleep(0.01)

        second = await api.post(
            "/api/projects/p1/runs", json={"files": FILES}
        )
        assert second.status_code == 409
        body = second.json()
        assert body["success"] is False
        assert body["metadata"]["active_run_id"] == run_id

    async def test_empty_file_list_rejected(
        self, api: AsyncClient
    ) -> None:
        resp = await api.post("/api/projects/p1/runs", json={"files": []})
        assert resp.status_code == 422

    async def test_unknown_run_is_404(self, api: AsyncClient) -> None:
        for path in ("/api/runs/nope/status", "/api/runs/nope"):
            resp = await api.get(path)
            assert resp.status_code == 404
            assert resp.json()["error"] == "Run not found"
        resp = await api.post("/api/runs/nope/cancel")
        assert resp.status_code == 404

    async def test_cancel(
        self,
        api: AsyncClient,
        backend: ScriptedBackend,
        orchestrator: AnalysisOrchestrator,
    ) -> None:
        backend.hang.update(f["path"] for f in FILES)
        resp = await api.post(
            "/api/projects/p1/runs", json={"files": FILES}
        )
        run_id = resp.json()["data"]["run_id"]

        cancel = await api.post(f"/api/runs/{run_id}/cancel")
        assert cancel.status_code == 200
        assert cancel.json()["success"] is True
        result = await orchestrator.wait(run_id)
        assert result.status == RunStatus.CANCELLED

    async def test_cancel_finished_run_conflicts(
        self,
        api: AsyncClient,
        repository: FakeRunRepository,
    ) -> None:
        run = AnalysisRun(project_id="p1")
        run.transition(RunStatus.CANCELLED)
        await repository.save_run(run)

        resp = await api.post(f"/api/runs/{run.id}/cancel")
        assert resp.status_code == 409
        assert resp.json()["error"] == "Run already finished"
