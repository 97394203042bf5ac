"""
Module: stock_kernel.models.sequence
Responsibility: Named counter rows backing SequenceService.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class SequenceCounter(Base):
    """
    One row per named sequence.

    Row-level locking on this table is what makes allocated values strictly
    monotonic under concurrent writers.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(nullable=False, default=0)
