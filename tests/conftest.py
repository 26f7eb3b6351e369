"""Shared test fixtures: scripted backend, fake run store, in-memory SQLite."""

import os

# Force demo API keys for all tests, no real LLM calls.
os.environ["ANTHROPIC_API_KEY"] = "for-demo-purposes-only"
os.environ["OPENAI_API_KEY"] = "for-demo-purposes-only"

from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fixwright.analysis.llm._llm_call import reset_breakers
from fixwright.analysis.llm.client import AIAnalysisClient
from fixwright.analysis.llm.fakes import ScriptedBackend
from fixwright.analysis.schemas import SourceFile
from fixwright.config import Settings
from fixwright.logging_config import detach_run_log
from fixwright.models.base import Base
from fixwright.repositories.fakes import FakeRunRepository
from fixwright.services.orchestrator import AnalysisOrchestrator


@pytest.fixture(autouse=True)
def _reset_breakers() -> None:
    reset_breakers()


@pytest.fixture(autouse=True)
def _reset_run_log_handlers():
    """The run audit log handler is process-wide; close it after each test."""
    yield
    detach_run_log()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Fast settings: short backend timeout, isolated directories."""
    return Settings(
        litellm_model_chain=["test-model"],
        llm_timeout_seconds=0.2,
        llm_max_concurrency=2,
        rate_limit_max_requests=1000,
        rate_limit_window_seconds=60.0,
        database_url="sqlite:///:memory:",
        data_dir=tmp_path / "data",
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def client(
    settings: Settings, backend: ScriptedBackend
) -> AIAnalysisClient:
    return AIAnalysisClient.from_settings(settings, backend=backend)


@pytest.fixture
def repository() -> FakeRunRepository:
    return FakeRunRepository()


@pytest.fixture
def orchestrator(
    client: AIAnalysisClient,
    repository: FakeRunRepository,
    settings: Settings,
) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(client, repository, settings)


@pytest.fixture
def project_files() -> list[SourceFile]:
    """Three small files named a.py, b.py, c.py."""
    return [
        SourceFile(
            path=f"{name}.py",
            language="python",
            content=f"def {name}():\n    return {i}\n",
        )
        for i, name in enumerate(("a", "b", "c"))
    ]


@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite shared across sessions via a static pool."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()
