"""psp webhook events journal

Revision ID: 20261003_psp_webhook_events
Revises: 20261002_escrow_payments
Create Date: 2026-10-03 09:00:00
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261003_psp_webhook_events"
down_revision = "20261002_escrow_payments"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "psp_webhook_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("event_id", sa.String(length=100), nullable=False),
        sa.Column("kind", sa.String(length=100), nullable=False),
        sa.Column("psp_ref", sa.String(length=128), nullable=True),
        sa.Column("raw_json", sa.JSON(), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("outcome", sa.String(length=50), nullable=True),
        sa.UniqueConstraint("provider", "event_id", name="uq_psp_webhook_events_provider_event_id"),
    )
    op.create_index("ix_psp_webhook_events_received", "psp_webhook_events", ["received_at"])
    op.create_index("ix_psp_webhook_events_kind", "psp_webhook_events", ["kind"])


def downgrade() -> None:
    op.drop_index("ix_psp_webhook_events_kind", table_name="psp_webhook_events")
    op.drop_index("ix_psp_webhook_events_received", table_name="psp_webhook_events")
    op.drop_table("psp_webhook_events")
