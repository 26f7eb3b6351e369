"""Request/response schemas for the HTTP API."""

from typing import Any

from pydantic import BaseModel, Field


class APIResponse(BaseModel):
    """Standard response envelope for all API endpoints."""

    success: bool
    data: Any | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SourceFileIn(BaseModel):
    path: str = Field(min_length=1, max_length=1000)
    language: str = "unknown"
    content: str


class RunCreate(BaseModel):
    """Request body for POST /api/projects/{id}/runs."""

    files: list[SourceFileIn] = Field(min_length=1)
