"""initial schema: activities, prize levels, events and draw records

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "activities",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("external_ref", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("commitment_hash", sa.String(length=64), nullable=True),
        sa.Column("sealed_seed", sa.Text(), nullable=True),
        sa.Column("seed", sa.String(length=64), nullable=True),
        sa.Column("profit_rate", sa.Float(), nullable=False),
        sa.Column("replay_version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revealed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending','active','awaiting_bonus','ended')",
            name=op.f("ck_activities_status_enum"),
        ),
        sa.CheckConstraint(
            "profit_rate >= 0 AND profit_rate <= 3",
            name=op.f("ck_activities_profit_rate_range"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_activities")),
        sa.UniqueConstraint("external_ref", name=op.f("uq_activities_external_ref")),
    )
    op.create_index("ix_activities_status", "activities", ["status"], unique=False)

    op.create_table(
        "prize_levels",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("activity_id", ID_TYPE, nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("total", sa.Integer(), nullable=False),
        sa.Column("remaining", sa.Integer(), nullable=False),
        sa.Column("base_probability", sa.Float(), nullable=False),
        sa.Column("is_major", sa.Boolean(), nullable=False),
        sa.Column("is_bonus", sa.Boolean(), nullable=False),
        sa.CheckConstraint("total >= 0", name=op.f("ck_prize_levels_total_non_negative")),
        sa.CheckConstraint(
            "remaining >= 0 AND remaining <= total",
            name=op.f("ck_prize_levels_remaining_range"),
        ),
        sa.CheckConstraint(
            "base_probability >= 0 AND base_probability <= 100",
            name=op.f("ck_prize_levels_probability_range"),
        ),
        sa.ForeignKeyConstraint(
            ["activity_id"],
            ["activities.id"],
            name=op.f("fk_prize_levels_activity_id_activities"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_prize_levels")),
        sa.UniqueConstraint("activity_id", "code", name="uq_prize_level_code"),
    )
    op.create_index(
        op.f("ix_prize_levels_activity_id"), "prize_levels", ["activity_id"], unique=False
    )

    op.create_table(
        "activity_events",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("activity_id", ID_TYPE, nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "action IN ('created','activated','profit_rate_changed','ended','revealed')",
            name=op.f("ck_activity_events_action_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["activity_id"],
            ["activities.id"],
            name=op.f("fk_activity_events_activity_id_activities"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_activity_events")),
    )
    op.create_index(
        op.f("ix_activity_events_activity_id"),
        "activity_events",
        ["activity_id"],
        unique=False,
    )

    op.create_table(
        "draw_records",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("activity_id", ID_TYPE, nullable=False),
        sa.Column("ticket_number", sa.Integer(), nullable=False),
        sa.Column("result_level", sa.String(length=50), nullable=False),
        sa.Column("recorded_profit_rate", sa.Float(), nullable=False),
        sa.Column("random_value", sa.Float(), nullable=True),
        sa.Column("random_hex", sa.String(length=16), nullable=True),
        sa.Column("txid_hash", sa.String(length=64), nullable=True),
        sa.Column("is_bonus", sa.Boolean(), nullable=False),
        sa.Column("idempotency_key", sa.String(length=64), nullable=True),
        sa.Column("buyer_ref", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "ticket_number >= 1", name=op.f("ck_draw_records_ticket_positive")
        ),
        sa.ForeignKeyConstraint(
            ["activity_id"],
            ["activities.id"],
            name=op.f("fk_draw_records_activity_id_activities"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draw_records")),
        sa.UniqueConstraint("activity_id", "ticket_number", name="uq_draw_ticket"),
        sa.UniqueConstraint("activity_id", "idempotency_key", name="uq_draw_idempotency"),
    )
    op.create_index(
        "ix_draw_records_activity_level",
        "draw_records",
        ["activity_id", "result_level"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_draw_records_activity_level", table_name="draw_records")
    op.drop_table("draw_records")
    op.drop_index(op.f("ix_activity_events_activity_id"), table_name="activity_events")
    op.drop_table("activity_events")
    op.drop_index(op.f("ix_prize_levels_activity_id"), table_name="prize_levels")
    op.drop_table("prize_levels")
    op.drop_index("ix_activities_status", table_name="activities")
    op.drop_table("activities")
