"""
Statistics models.

Per-participant, per-period running totals. The snapshot holds the overall
count/amount, level totals hold the same numbers broken out per level.
Both are merged with atomic increments keyed by (participant, period).
"""

from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from cpa_engine.models.base import Base
from cpa_engine.models.types import MoneyType


class StatisticsSnapshot(Base):
    """Totals for one participant over one closed period."""

    __tablename__ = "statistics_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "participant_id",
            "period_start",
            "period_end",
            name="uq_statistics_participant_period",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    participant_id: Mapped[int] = mapped_column(
        BigInteger, index=True, nullable=False
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    total_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<StatisticsSnapshot(participant_id={self.participant_id}, "
            f"period={self.period_start}..{self.period_end}, "
            f"count={self.total_count}, amount={self.total_amount})>"
        )


class StatisticsLevelTotal(Base):
    """Per-level totals for one participant over one closed period."""

    __tablename__ = "statistics_level_totals"
    __table_args__ = (
        UniqueConstraint(
            "participant_id",
            "period_start",
            "period_end",
            "level",
            name="uq_statistics_level_participant_period",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    participant_id: Mapped[int] = mapped_column(
        BigInteger, index=True, nullable=False
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)

    count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
