"""Typed application state: replaces untyped getattr() access."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixwright.analysis.llm.client import AIAnalysisClient
from fixwright.config import Settings
from fixwright.services.orchestrator import AnalysisOrchestrator


@dataclass
class AppState:
    """Typed container for app.state attributes."""

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    client: AIAnalysisClient
    orchestrator: AnalysisOrchestrator
