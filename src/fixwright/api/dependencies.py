"""FastAPI dependency injection for the shared services."""

from __future__ import annotations

from fastapi import Request

from fixwright.api.app_state import AppState
from fixwright.services.orchestrator import AnalysisOrchestrator


def get_app_state(request: Request) -> AppState:
    return request.app.state.typed  # type: ignore[no-any-return]


def get_orchestrator(request: Request) -> AnalysisOrchestrator:
    """Get the process-wide AnalysisOrchestrator from app.state."""
    return get_app_state(request).orchestrator
