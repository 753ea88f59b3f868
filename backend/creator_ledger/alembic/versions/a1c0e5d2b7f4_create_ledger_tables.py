"""Create creator ledger, payout and webhook tables

Revision ID: a1c0e5d2b7f4
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1c0e5d2b7f4"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # 金额列均为最小货币单位（分），见 models/base.py MinorUnits
    op.create_table(
        "creator_accounts",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("creator_id", sa.String(length=64), nullable=False),
        sa.Column("external_account_id", sa.String(length=128), nullable=True),
        sa.Column("verification_state", sa.String(length=16), nullable=False),
        sa.Column("verification_note", sa.String(length=255), nullable=True),
        sa.Column("is_disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_creator_accounts_creator_id", "creator_accounts", ["creator_id"], unique=True)

    op.create_table(
        "creator_ledgers",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("creator_id", sa.String(length=64), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("total_earned", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_paid_out", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("reserved", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("open_reservations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("reserved >= 0", name="ck_creator_ledgers_reserved_non_negative"),
        sa.CheckConstraint(
            "total_earned - total_paid_out - reserved >= 0",
            name="ck_creator_ledgers_available_non_negative",
        ),
    )
    op.create_index("ix_creator_ledgers_creator_id", "creator_ledgers", ["creator_id"], unique=True)

    op.create_table(
        "revenue_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("creator_id", sa.String(length=64), nullable=False),
        sa.Column("source_type", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("external_reference_id", sa.String(length=128), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "creator_id", "external_reference_id", name="uq_revenue_event_reference"
        ),
    )
    op.create_index("ix_revenue_events_creator_id", "revenue_events", ["creator_id"])

    op.create_table(
        "ledger_reservations",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("creator_id", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("state", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_ledger_reservations_creator_id", "ledger_reservations", ["creator_id"])

    op.create_table(
        "payout_requests",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("creator_id", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column(
            "reservation_id",
            sa.BigInteger(),
            sa.ForeignKey("ledger_reservations.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("external_payout_id", sa.String(length=128), nullable=True),
        sa.Column("external_account_id", sa.String(length=128), nullable=True),
        sa.Column("failure_reason", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.String(length=500), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payout_requests_creator_id", "payout_requests", ["creator_id"])
    op.create_index("ix_payout_requests_status", "payout_requests", ["status"])
    op.create_index("ix_payout_requests_updated_at", "payout_requests", ["updated_at"])
    op.create_index(
        "ix_payout_requests_external_payout_id",
        "payout_requests",
        ["external_payout_id"],
        unique=True,
    )

    op.create_table(
        "payout_status_history",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column(
            "payout_id",
            sa.BigInteger(),
            sa.ForeignKey("payout_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("from_status", sa.String(length=16), nullable=True),
        sa.Column("to_status", sa.String(length=16), nullable=False),
        sa.Column("source", sa.String(length=16), nullable=False),
        sa.Column("external_event_id", sa.String(length=128), nullable=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payout_status_history_payout_id", "payout_status_history", ["payout_id"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("external_event_id", sa.String(length=128), nullable=False),
        sa.Column("external_payout_id", sa.String(length=128), nullable=False),
        sa.Column("external_status", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("outcome", sa.String(length=32), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_webhook_events_external_event_id", "webhook_events", ["external_event_id"], unique=True
    )
    op.create_index(
        "ix_webhook_events_external_payout_id", "webhook_events", ["external_payout_id"]
    )


def downgrade() -> None:
    op.drop_table("webhook_events")
    op.drop_table("payout_status_history")
    op.drop_table("payout_requests")
    op.drop_table("ledger_reservations")
    op.drop_table("revenue_events")
    op.drop_table("creator_ledgers")
    op.drop_table("creator_accounts")
