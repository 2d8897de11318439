"""
Distribution record model.

One row per (event, ancestor) pair that passed the payout floor. Amounts are
never updated in place; corrections create new records.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cpa_engine.models.base import Base
from cpa_engine.models.enums import DistributionStatus
from cpa_engine.models.types import MoneyType

if TYPE_CHECKING:
    from cpa_engine.models.commission_event import CommissionEvent


class DistributionRecord(Base):
    """Payout intent for one ancestor of a commission event."""

    __tablename__ = "distribution_records"
    __table_args__ = (
        # Idempotency key: a retried event never pays the same ancestor twice
        UniqueConstraint(
            "event_id", "participant_id", name="uq_distribution_event_participant"
        ),
        CheckConstraint(
            "distributed_amount > 0",
            name="check_distribution_amount_positive",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    event_id: Mapped[int] = mapped_column(
        ForeignKey("commission_events.id", ondelete="RESTRICT"),
        index=True,
        nullable=False,
    )
    subject_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    participant_id: Mapped[int] = mapped_column(
        BigInteger, index=True, nullable=False
    )
    # 2 = first ancestor of the originator
    level: Mapped[int] = mapped_column(Integer, nullable=False)

    original_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    distributed_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)

    transaction_id: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=DistributionStatus.COMPLETED.value,
        index=True,
        nullable=False,
    )

    # Set once the record has been folded into statistics
    statistics_applied: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    distribution_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        index=True,
        nullable=False,
    )

    event: Mapped["CommissionEvent"] = relationship(
        "CommissionEvent",
        back_populates="distributions",
    )

    def to_dict(self) -> dict[str, Any]:
        """Plain representation for audit records and API responses."""
        return {
            "id": self.id,
            "event_id": self.event_id,
            "participant_id": self.participant_id,
            "level": self.level,
            "original_amount": str(self.original_amount),
            "distributed_amount": str(self.distributed_amount),
            "currency": self.currency,
            "transaction_id": self.transaction_id,
            "status": self.status,
        }

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<DistributionRecord(id={self.id}, event_id={self.event_id}, "
            f"participant_id={self.participant_id}, level={self.level}, "
            f"amount={self.distributed_amount})>"
        )
