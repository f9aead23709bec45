"""Create settlement tables.

Revision ID: 20261019_000001_create_settlement_tables
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261019_000001_create_settlement_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

MONEY = sa.DECIMAL(precision=18, scale=8)
RATE = sa.DECIMAL(precision=10, scale=8)


def upgrade() -> None:
    """Create purchases, schedules, schedule days and sweep runs."""
    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("principal_amount", MONEY, nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("payment_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
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
        sa.CheckConstraint(
            "principal_amount >= 0", name="check_purchase_principal_non_negative"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_purchases_user_id", "purchases", ["user_id"])
    op.create_index("ix_purchases_status", "purchases", ["status"])

    op.create_table(
        "benefit_schedules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("purchase_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("days", sa.Integer(), nullable=False),
        sa.Column("day_index", sa.Integer(), nullable=True),
        sa.Column("principal_amount", MONEY, nullable=False),
        sa.Column("daily_rate", RATE, nullable=False),
        sa.Column("daily_amount", MONEY, nullable=False),
        sa.Column(
            "total_released", MONEY, nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "days_released", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "schedule_status",
            sa.String(length=20),
            nullable=False,
            server_default="active",
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
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
        sa.CheckConstraint(
            "kind IN ('BENEFIT', 'REFERRER', 'PARENT')", name="check_schedule_kind"
        ),
        sa.CheckConstraint(
            "(kind = 'BENEFIT' AND day_index IS NULL) OR "
            "(kind IN ('REFERRER', 'PARENT') AND day_index IS NOT NULL)",
            name="check_schedule_day_index_by_kind",
        ),
        sa.CheckConstraint(
            "days >= 1 AND days <= 30", name="check_schedule_days_range"
        ),
        sa.CheckConstraint(
            "principal_amount > 0", name="check_schedule_principal_positive"
        ),
        sa.CheckConstraint(
            "daily_rate >= 0 AND daily_rate <= 1",
            name="check_schedule_daily_rate_range",
        ),
        sa.CheckConstraint(
            "days_released >= 0 AND days_released <= days",
            name="check_schedule_days_released_range",
        ),
        sa.CheckConstraint(
            "total_released >= 0",
            name="check_schedule_total_released_non_negative",
        ),
        sa.CheckConstraint(
            "schedule_status IN ('active', 'completed', 'cancelled')",
            name="check_schedule_status",
        ),
        sa.ForeignKeyConstraint(
            ["purchase_id"],
            ["purchases.id"],
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_benefit_schedules_purchase_id", "benefit_schedules", ["purchase_id"]
    )
    op.create_index("ix_benefit_schedules_user_id", "benefit_schedules", ["user_id"])
    op.create_index(
        "ix_benefit_schedules_start_at", "benefit_schedules", ["start_at"]
    )
    op.create_index(
        "ix_benefit_schedules_schedule_status",
        "benefit_schedules",
        ["schedule_status"],
    )
    op.create_index(
        "idx_schedule_kind_status", "benefit_schedules", ["kind", "schedule_status"]
    )
    op.create_index(
        "idx_schedule_user_status",
        "benefit_schedules",
        ["user_id", "schedule_status"],
    )

    # One BENEFIT schedule per purchase, one commission per (purchase, kind, day)
    op.create_index(
        "uq_benefit_schedule_purchase",
        "benefit_schedules",
        ["purchase_id"],
        unique=True,
        postgresql_where=sa.text("kind = 'BENEFIT'"),
    )
    op.create_index(
        "uq_commission_schedule_purchase_kind_day",
        "benefit_schedules",
        ["purchase_id", "kind", "day_index"],
        unique=True,
        postgresql_where=sa.text("kind IN ('REFERRER', 'PARENT')"),
    )

    op.create_table(
        "benefit_schedule_days",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("schedule_id", sa.Integer(), nullable=False),
        sa.Column("day", sa.Integer(), nullable=False),
        sa.Column(
            "status", sa.String(length=20), nullable=False, server_default="pending"
        ),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ledger_ref", sa.String(length=255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "attempts", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_attempt_error", sa.Text(), nullable=True),
        sa.CheckConstraint("day >= 0", name="check_schedule_day_non_negative"),
        sa.CheckConstraint(
            "status IN ('pending', 'released', 'failed')",
            name="check_schedule_day_status",
        ),
        sa.ForeignKeyConstraint(
            ["schedule_id"],
            ["benefit_schedules.id"],
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("schedule_id", "day", name="uq_schedule_day"),
    )
    op.create_index(
        "ix_benefit_schedule_days_schedule_id",
        "benefit_schedule_days",
        ["schedule_id"],
    )
    op.create_index(
        "idx_schedule_day_status_date",
        "benefit_schedule_days",
        ["status", "scheduled_date"],
    )

    op.create_table(
        "settlement_sweep_runs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("as_of", sa.DateTime(timezone=True), nullable=False),
        sa.Column("trigger", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column(
            "released_count", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "failed_count", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "deferred_count", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "skipped_count", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "total_amount", MONEY, nullable=False, server_default=sa.text("0")
        ),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_sweep_run_status_started",
        "settlement_sweep_runs",
        ["status", "started_at"],
    )


def downgrade() -> None:
    """Drop settlement tables."""
    op.drop_index("idx_sweep_run_status_started", table_name="settlement_sweep_runs")
    op.drop_table("settlement_sweep_runs")

    op.drop_index("idx_schedule_day_status_date", table_name="benefit_schedule_days")
    op.drop_index(
        "ix_benefit_schedule_days_schedule_id", table_name="benefit_schedule_days"
    )
    op.drop_table("benefit_schedule_days")

    op.drop_index(
        "uq_commission_schedule_purchase_kind_day", table_name="benefit_schedules"
    )
    op.drop_index("uq_benefit_schedule_purchase", table_name="benefit_schedules")
    op.drop_index("idx_schedule_user_status", table_name="benefit_schedules")
    op.drop_index("idx_schedule_kind_status", table_name="benefit_schedules")
    op.drop_index(
        "ix_benefit_schedules_schedule_status", table_name="benefit_schedules"
    )
    op.drop_index("ix_benefit_schedules_start_at", table_name="benefit_schedules")
    op.drop_index("ix_benefit_schedules_user_id", table_name="benefit_schedules")
    op.drop_index("ix_benefit_schedules_purchase_id", table_name="benefit_schedules")
    op.drop_table("benefit_schedules")

    op.drop_index("ix_purchases_status", table_name="purchases")
    op.drop_index("ix_purchases_user_id", table_name="purchases")
    op.drop_table("purchases")
