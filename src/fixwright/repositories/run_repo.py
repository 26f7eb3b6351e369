"""SQL implementation of RunRepository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixwright.constants import ACTIVE_STATUSES, RunStatus
from fixwright.models.run import AnalysisRunRecord
from fixwright.services.run_state import AnalysisRun


def _apply(record: AnalysisRunRecord, run: AnalysisRun) -> None:
    record.project_id = run.project_id
    record.status = run.status
    record.current_stage = run.current_stage
    record.progress_percent = run.progress_percent
    record.error = run.error
    record.payload_json = run.model_dump_json()


class SqlRunRepository:
    """Run repo that owns its own sessions.

    Runs are checkpointed from background tasks, not request handlers,
    so each operation opens a short-lived session from the factory.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def load_run(self, run_id: str) -> AnalysisRun | None:
        async with self._session_factory() as session:
            record = await session.get(AnalysisRunRecord, run_id)
            if record is None:
                return None
            return AnalysisRun.model_validate_json(record.payload_json)

    async def save_run(self, run: AnalysisRun) -> None:
        async with self._session_factory() as session, session.begin():
            record = await session.get(AnalysisRunRecord, run.id)
            if record is None:
                record = AnalysisRunRecord(id=run.id)
                session.add(record)
            _apply(record, run)

    async def find_active(self, project_id: str) -> AnalysisRun | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AnalysisRunRecord.payload_json)
                .where(
                    AnalysisRunRecord.project_id == project_id,
                    AnalysisRunRecord.status.in_(
                        [str(s) for s in ACTIVE_STATUSES]
                    ),
                )
                .order_by(AnalysisRunRecord.created_at.desc())
                .limit(1)
            )
            payload = result.scalar_one_or_none()
            if payload is None:
                return None
            return AnalysisRun.model_validate_json(payload)

    async def list_for_project(
        self, project_id: str
    ) -> list[AnalysisRun]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AnalysisRunRecord.payload_json)
                .where(AnalysisRunRecord.project_id == project_id)
                .order_by(AnalysisRunRecord.created_at)
            )
            return [
                AnalysisRun.model_validate_json(p)
                for p in result.scalars().all()
            ]

    async def recover_interrupted(self, reason: str) -> int:
        """Fail every run a previous process left pending or processing."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                select(AnalysisRunRecord).where(
                    AnalysisRunRecord.status.in_(
                        [str(s) for s in ACTIVE_STATUSES]
                    )
                )
            )
            records = list(result.scalars().all())
            for record in records:
                run = AnalysisRun.model_validate_json(record.payload_json)
                run.transition(RunStatus.FAILED)
                run.error = reason
                _apply(record, run)
            return len(records)
