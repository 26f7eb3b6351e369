"""FastAPI application with lifespan startup."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

# Phase 1: logging MUST be configured before any fixwright module that
# imports litellm (litellm reads LITELLM_LOG at import time)
from fixwright.config import Settings
from fixwright.logging_config import setup_logging

_settings = Settings()
setup_logging(_settings)

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402

from fixwright import __version__  # noqa: E402
from fixwright.analysis.llm.client import AIAnalysisClient  # noqa: E402
from fixwright.api.app_state import AppState  # noqa: E402
from fixwright.api.routes import health, runs  # noqa: E402
from fixwright.config import create_app_engine  # noqa: E402
from fixwright.logger import RunLogger  # noqa: E402
from fixwright.logging_config import (  # noqa: E402
    cleanup_third_party_handlers,
)
from fixwright.models.base import Base  # noqa: E402
from fixwright.repositories.run_repo import SqlRunRepository  # noqa: E402
from fixwright.services.orchestrator import (  # noqa: E402
    AnalysisOrchestrator,
)

# Phase 2: Now that all imports (including litellm) are done,
# clear litellm's duplicate handlers.
cleanup_third_party_handlers()

_logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = _settings

    # 1. Async SQLite engine (WAL set via pool-connect listener)
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    engine = create_app_engine(
        settings.database_url, echo=settings.debug_mode
    )

    # 2. Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # 3. Session factory + run store
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    repository = SqlRunRepository(session_factory)

    # 4. Shared client (one cache, one rate limiter) and orchestrator
    client = AIAnalysisClient.from_settings(settings)
    run_logger = RunLogger(settings.log_dir, settings.log_level)
    orchestrator = AnalysisOrchestrator(
        client,
        repository,
        settings,
        run_logger=run_logger,
    )

    # 5. Runs a crashed process left behind can never finish
    await orchestrator.recover_interrupted()

    app.state.settings = settings
    app.state.engine = engine
    app.state.typed = AppState(
        settings=settings,
        session_factory=session_factory,
        client=client,
        orchestrator=orchestrator,
    )
    _logger.info(
        "event=startup models=%s concurrency=%d",
        ",".join(settings.litellm_model_chain),
        settings.llm_max_concurrency,
    )

    yield

    # Cleanup
    await orchestrator.shutdown()
    run_logger.close()
    await engine.dispose()


app = FastAPI(
    title="fixwright",
    description="AI-assisted code review and fix pipeline",
    version=__version__,
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    lifespan=lifespan,
)

_cors_origins = [
    o.strip()
    for o in _settings.cors_origins.split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
    allow_credentials=False,
)

# Routes
app.include_router(health.router)
app.include_router(runs.router)
