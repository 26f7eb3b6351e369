"""SQLAlchemy ORM models."""

from fixwright.models.base import Base
from fixwright.models.run import AnalysisRunRecord

__all__ = [
    "AnalysisRunRecord",
    "Base",
]
