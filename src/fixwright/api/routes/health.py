"""Health check endpoint."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from fixwright import __version__
from fixwright.api.app_state import AppState
from fixwright.api.dependencies import get_app_state

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health(
    state: AppState = Depends(get_app_state),
) -> dict[str, object]:
    """Liveness plus a view of the shared cache and rate window."""
    window = state.client.rate_window()
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
        "cache_entries": len(state.client.cache),
        "rate_limit_remaining": window.remaining,
    }
