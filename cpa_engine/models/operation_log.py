"""
Operation log model.

Append-only audit trail of engine operations, successful or not.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from cpa_engine.models.base import Base
from cpa_engine.models.enums import OperationStatus


class OperationLog(Base):
    """Audit entry for one engine operation."""

    __tablename__ = "operation_logs"
    __table_args__ = (
        Index("ix_operation_logs_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    operation_type: Mapped[str] = mapped_column(
        String(50), index=True, nullable=False
    )
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)

    operation_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB, nullable=True
    )
    result_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB, nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=OperationStatus.SUCCESS.value,
        index=True,
        nullable=False,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    execution_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        index=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<OperationLog(id={self.id}, type={self.operation_type}, "
            f"entity={self.entity_type}:{self.entity_id}, status={self.status})>"
        )
