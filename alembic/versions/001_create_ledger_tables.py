"""Create ledger tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates accounts, the append-only ledger, transcripts, summary jobs
       and the purchase tables, and seeds the credit-pack catalogue.
How:   Portable column types (the same schema runs on PostgreSQL and on the
       SQLite database used by the tests); UUIDs are generated by the app.

Rollback: downgrade() drops every table (destructive, the ledger is lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = False, default: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP") if default else None,
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(128), nullable=False, comment="Stable identity from the identity provider"),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        # Cache of SUM(ledger_entries.delta); written only together with a ledger row
        sa.Column("balance", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.String(128), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False, comment="Signed credit amount, never zero"),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("reference_id", sa.String(255), nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key", name="uq_ledger_entries_idempotency_key"),
    )
    op.create_index("idx_ledger_account_created", "ledger_entries", ["account_id", "created_at"])

    op.create_table(
        "transcripts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.String(128), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("transcript_text", sa.Text(), nullable=False),
        sa.Column("transcript_json", sa.JSON(), nullable=False),
        sa.Column("meeting_metadata", sa.JSON(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_transcripts_account_created", "transcripts", ["account_id", "created_at"])

    op.create_table(
        "billable_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.String(128), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("input_ref", sa.Uuid(), sa.ForeignKey("transcripts.id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("custom_prompt", sa.Text(), nullable=True),
        # pending → completed | failed, each transition a conditional UPDATE
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("cost_charged", sa.Integer(), nullable=False),
        sa.Column("result", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _timestamp("claimed_at", nullable=True, default=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        _timestamp("completed_at", nullable=True, default=False),
        _timestamp("refunded_at", nullable=True, default=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_jobs_input_ref", "billable_jobs", ["input_ref"])
    op.create_index("idx_jobs_status_claimed", "billable_jobs", ["status", "claimed_at"])

    products = op.create_table(
        "products",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "payment_intents",
        sa.Column("intent_id", sa.String(255), nullable=False),
        sa.Column("account_id", sa.String(128), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("product_id", sa.String(64), sa.ForeignKey("products.id"), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("credits_granted", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("ledger_entry_id", sa.Uuid(), nullable=True),
        _timestamp("created_at"),
        _timestamp("settled_at", nullable=True, default=False),
        sa.PrimaryKeyConstraint("intent_id"),
    )
    op.create_index("idx_payment_intents_account", "payment_intents", ["account_id"])

    op.create_table(
        "settlement_events",
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("intent_id", sa.String(255), nullable=False),
        sa.Column("outcome", sa.String(32), nullable=False),
        sa.Column("reported_amount", sa.Integer(), nullable=True),
        sa.Column("reported_account_id", sa.String(128), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'received'")),
        sa.Column("result", sa.String(32), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _timestamp("received_at"),
        _timestamp("processed_at", nullable=True, default=False),
        sa.PrimaryKeyConstraint("event_id"),
    )
    op.create_index("idx_settlement_events_status", "settlement_events", ["status"])
    op.create_index("idx_settlement_events_intent", "settlement_events", ["intent_id"])

    op.bulk_insert(
        products,
        [
            {"id": "credits_100", "name": "100 credits", "price_cents": 500, "currency": "usd", "credits": 100, "active": True},
            {"id": "credits_500", "name": "500 credits", "price_cents": 2000, "currency": "usd", "credits": 500, "active": True},
            {"id": "credits_1500", "name": "1500 credits", "price_cents": 5000, "currency": "usd", "credits": 1500, "active": True},
        ],
    )


def downgrade() -> None:
    """Drop every table, children first. Destructive."""
    op.drop_index("idx_settlement_events_intent", table_name="settlement_events")
    op.drop_index("idx_settlement_events_status", table_name="settlement_events")
    op.drop_table("settlement_events")
    op.drop_index("idx_payment_intents_account", table_name="payment_intents")
    op.drop_table("payment_intents")
    op.drop_table("products")
    op.drop_index("idx_jobs_status_claimed", table_name="billable_jobs")
    op.drop_index("idx_jobs_input_ref", table_name="billable_jobs")
    op.drop_table("billable_jobs")
    op.drop_index("idx_transcripts_account_created", table_name="transcripts")
    op.drop_table("transcripts")
    op.drop_index("idx_ledger_account_created", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    op.drop_table("accounts")
