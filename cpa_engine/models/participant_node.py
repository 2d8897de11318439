"""
Participant node model.

One row per participant in the referral hierarchy. `level` and `path` are
materialized from the parent pointer and are always recomputed by the
engine, never taken from input.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from cpa_engine.models.base import Base


class ParticipantNode(Base):
    """Participant in the hierarchy (parent-pointer tree with materialized path)."""

    __tablename__ = "participant_nodes"
    __table_args__ = (
        CheckConstraint("level >= 1", name="check_participant_level_positive"),
        CheckConstraint(
            "cardinality(path) = level",
            name="check_participant_path_matches_level",
        ),
        Index("ix_participant_nodes_path", "path", postgresql_using="gin"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # Externally assigned identifier
    participant_id: Mapped[int] = mapped_column(
        BigInteger, unique=True, index=True, nullable=False
    )
    parent_id: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True, index=True
    )

    # Depth from the root (root = 1)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    # Participant ids from root to self, inclusive
    path: Mapped[list[int]] = mapped_column(
        ARRAY(BigInteger), nullable=False
    )

    active: Mapped[bool] = mapped_column(
        Boolean, default=True, index=True, nullable=False
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
            f"<ParticipantNode(participant_id={self.participant_id}, "
            f"parent_id={self.parent_id}, level={self.level}, "
            f"active={self.active})>"
        )
