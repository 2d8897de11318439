"""Create distribution engine tables.

Revision ID: 20261017_000001_create_engine_tables
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261017_000001_create_engine_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

MONEY = sa.DECIMAL(precision=18, scale=8)


def upgrade() -> None:
    """Create hierarchy, distribution, statistics and audit tables."""
    op.create_table(
        "participant_nodes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("participant_id", sa.BigInteger(), nullable=False),
        sa.Column("parent_id", sa.BigInteger(), nullable=True),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("path", postgresql.ARRAY(sa.BigInteger()), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint("level >= 1", name="check_participant_level_positive"),
        sa.CheckConstraint(
            "cardinality(path) = level", name="check_participant_path_matches_level"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_participant_nodes_participant_id",
        "participant_nodes",
        ["participant_id"],
        unique=True,
    )
    op.create_index("ix_participant_nodes_active", "participant_nodes", ["active"])
    op.create_index(
        "ix_participant_nodes_parent_id", "participant_nodes", ["parent_id"]
    )
    op.create_index(
        "ix_participant_nodes_path",
        "participant_nodes",
        ["path"],
        postgresql_using="gin",
    )

    op.create_table(
        "commission_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("subject_user_id", sa.BigInteger(), nullable=False),
        sa.Column("originating_participant_id", sa.BigInteger(), nullable=False),
        sa.Column("originating_level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("base_amount", MONEY, nullable=False),
        sa.Column("deposit_amount", MONEY, nullable=True),
        sa.Column("bets_count", sa.Integer(), nullable=True),
        sa.Column("total_bet_amount", MONEY, nullable=True),
        sa.Column("days_active", sa.Integer(), nullable=True),
        sa.Column(
            "validation_rule_id",
            sa.String(length=50),
            nullable=False,
            server_default="default",
        ),
        sa.Column(
            "validation_criteria",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("source_reference", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column(
            "validated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("distributed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_reference"),
    )
    op.create_index(
        "ix_commission_events_subject_user_id", "commission_events", ["subject_user_id"]
    )
    op.create_index(
        "ix_commission_events_originating_participant_id",
        "commission_events",
        ["originating_participant_id"],
    )
    op.create_index("ix_commission_events_status", "commission_events", ["status"])
    op.create_index(
        "ix_commission_events_validated_at", "commission_events", ["validated_at"]
    )

    op.create_table(
        "distribution_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("subject_user_id", sa.BigInteger(), nullable=False),
        sa.Column("participant_id", sa.BigInteger(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("original_amount", MONEY, nullable=False),
        sa.Column("distributed_amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("transaction_id", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column(
            "statistics_applied",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "distribution_date",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "distributed_amount > 0", name="check_distribution_amount_positive"
        ),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["commission_events.id"],
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "event_id", "participant_id", name="uq_distribution_event_participant"
        ),
        sa.UniqueConstraint("transaction_id"),
    )
    op.create_index(
        "ix_distribution_records_event_id", "distribution_records", ["event_id"]
    )
    op.create_index(
        "ix_distribution_records_participant_id",
        "distribution_records",
        ["participant_id"],
    )
    op.create_index(
        "ix_distribution_records_status", "distribution_records", ["status"]
    )
    op.create_index(
        "ix_distribution_records_distribution_date",
        "distribution_records",
        ["distribution_date"],
    )

    op.create_table(
        "statistics_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("participant_id", sa.BigInteger(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("total_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_amount", MONEY, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "participant_id",
            "period_start",
            "period_end",
            name="uq_statistics_participant_period",
        ),
    )
    op.create_index(
        "ix_statistics_snapshots_participant_id",
        "statistics_snapshots",
        ["participant_id"],
    )

    op.create_table(
        "statistics_level_totals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("participant_id", sa.BigInteger(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("amount", MONEY, nullable=False, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "participant_id",
            "period_start",
            "period_end",
            "level",
            name="uq_statistics_level_participant_period",
        ),
    )
    op.create_index(
        "ix_statistics_level_totals_participant_id",
        "statistics_level_totals",
        ["participant_id"],
    )

    op.create_table(
        "operation_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("operation_type", sa.String(length=50), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=100), nullable=False),
        sa.Column(
            "operation_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True
        ),
        sa.Column("result_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("execution_time_ms", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(length=100), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_operation_logs_operation_type", "operation_logs", ["operation_type"]
    )
    op.create_index("ix_operation_logs_status", "operation_logs", ["status"])
    op.create_index("ix_operation_logs_created_at", "operation_logs", ["created_at"])
    op.create_index(
        "ix_operation_logs_entity", "operation_logs", ["entity_type", "entity_id"]
    )


def downgrade() -> None:
    """Drop engine tables."""
    op.drop_table("operation_logs")
    op.drop_table("statistics_level_totals")
    op.drop_table("statistics_snapshots")
    op.drop_table("distribution_records")
    op.drop_table("commission_events")
    op.drop_table("participant_nodes")
