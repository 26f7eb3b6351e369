"""Progress events emitted while a run executes."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeAlias

from fixwright.constants import STAGE_LABELS, StageProgress


@dataclass(frozen=True)
class StageEvent:
    """Typed event emitted on stage start/finish and per-file completion."""

    run_id: str
    name: str
    status: StageProgress
    message: str = ""
    duration_ms: float = 0.0
    # Per-file progress within a fan-out stage
    completed: int | None = None
    total: int | None = None
    percent: float | None = None

    @property
    def label(self) -> str:
        """User-friendly display label from STAGE_LABELS."""
        return STAGE_LABELS.get(self.name, self.name)


ProgressCallback: TypeAlias = Callable[[StageEvent], None]
