"""In-memory fake repositories for testing.

Dict-backed implementation of the RunRepository protocol.
No SQLAlchemy and no I/O, so operations are instant.
"""

from __future__ import annotations

from fixwright.constants import ACTIVE_STATUSES, RunStatus
from fixwright.services.run_state import AnalysisRun


class FakeRunRepository:
    """Dict-backed RunRepository for testing.

    Stores deep copies so callers cannot mutate persisted state behind
    the repository's back. ``fail_saves`` makes every save raise, to
    exercise the orchestrator's structural-failure path.
    """

    def __init__(self) -> None:
        self._store: dict[str, AnalysisRun] = {}
        self.save_count = 0
        self.fail_saves = False

    async def load_run(self, run_id: str) -> AnalysisRun | None:
        run = self._store.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def save_run(self, run: AnalysisRun) -> None:
        if self.fail_saves:
            raise ConnectionError("run store unreachable")
        self.save_count += 1
        self._store[run.id] = run.model_copy(deep=True)

    async def find_active(self, project_id: str) -> AnalysisRun | None:
        for run in reversed(self._store.values()):
            if run.project_id == project_id and run.status in ACTIVE_STATUSES:
                return run.model_copy(deep=True)
        return None

    async def list_for_project(
        self, project_id: str
    ) -> list[AnalysisRun]:
        return [
            r.model_copy(deep=True)
            for r in self._store.values()
            if r.project_id == project_id
        ]

    async def recover_interrupted(self, reason: str) -> int:
        recovered = 0
        for run in self._store.values():
            if run.status in ACTIVE_STATUSES:
                run.transition(RunStatus.FAILED)
                run.error = reason
                recovered += 1
        return recovered
