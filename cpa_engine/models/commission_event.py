"""
Commission event model.

One row per eligibility-approved CPA event. Immutable after creation apart
from the status transition made in the same unit of work.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cpa_engine.models.base import Base
from cpa_engine.models.enums import CommissionEventStatus
from cpa_engine.models.types import MoneyType

if TYPE_CHECKING:
    from cpa_engine.models.distribution_record import DistributionRecord


class CommissionEvent(Base):
    """Validated CPA event."""

    __tablename__ = "commission_events"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    subject_user_id: Mapped[int] = mapped_column(
        BigInteger, index=True, nullable=False
    )
    originating_participant_id: Mapped[int] = mapped_column(
        BigInteger, index=True, nullable=False
    )
    originating_level: Mapped[int] = mapped_column(
        Integer, default=1, nullable=False
    )

    # Amount credited to the originator by the caller
    base_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Measured attributes
    deposit_amount: Mapped[Decimal | None] = mapped_column(MoneyType, nullable=True)
    bets_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_bet_amount: Mapped[Decimal | None] = mapped_column(MoneyType, nullable=True)
    days_active: Mapped[int | None] = mapped_column(Integer, nullable=True)

    validation_rule_id: Mapped[str] = mapped_column(
        String(50), default="default", nullable=False
    )
    # Stored for audit, never interpreted after validation
    validation_criteria: Mapped[dict[str, Any]] = mapped_column(
        JSONB, default=dict, nullable=False
    )

    # Idempotency key supplied by the batch source
    source_reference: Mapped[str | None] = mapped_column(
        String(100), unique=True, nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=CommissionEventStatus.PENDING.value,
        index=True,
        nullable=False,
    )

    validated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        index=True,
        nullable=False,
    )
    distributed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    distributions: Mapped[list["DistributionRecord"]] = relationship(
        "DistributionRecord",
        back_populates="event",
        lazy="selectin",
    )

    def to_dict(self) -> dict[str, Any]:
        """Plain representation for audit records and API responses."""
        return {
            "id": self.id,
            "subject_user_id": self.subject_user_id,
            "originating_participant_id": self.originating_participant_id,
            "originating_level": self.originating_level,
            "base_amount": str(self.base_amount),
            "validation_rule_id": self.validation_rule_id,
            "source_reference": self.source_reference,
            "status": self.status,
            "validated_at": self.validated_at.isoformat() if self.validated_at else None,
            "distributed_at": (
                self.distributed_at.isoformat() if self.distributed_at else None
            ),
        }

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionEvent(id={self.id}, "
            f"subject_user_id={self.subject_user_id}, "
            f"originating_participant_id={self.originating_participant_id}, "
            f"status={self.status})>"
        )
