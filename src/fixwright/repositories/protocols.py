"""Protocol-based repository interfaces.

SQL implementations satisfy these protocols structurally (no inheritance).
Test doubles can be plain classes or mocks matching the same signature.
"""

from typing import Protocol

from fixwright.services.run_state import AnalysisRun


class RunRepository(Protocol):
    async def load_run(self, run_id: str) -> AnalysisRun | None: ...
    async def save_run(self, run: AnalysisRun) -> None: ...
    async def find_active(self, project_id: str) -> AnalysisRun | None: ...
    async def list_for_project(
        self, project_id: str
    ) -> list[AnalysisRun]: ...
    async def recover_interrupted(self, reason: str) -> int: ...
