"""AnalysisRunRecord ORM model: one row per analysis run."""

from datetime import UTC, datetime

from sqlalchemy import Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from fixwright.constants import RunStatus
from fixwright.models.base import Base


class AnalysisRunRecord(Base):
    """Indexed status columns plus the full run as a JSON payload."""

    __tablename__ = "analysis_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(
        String(20), default=RunStatus.PENDING
    )
    current_stage: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )
    progress_percent: Mapped[float] = mapped_column(default=0.0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload_json: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("ix_analysis_runs_project_status", "project_id", "status"),
    )
