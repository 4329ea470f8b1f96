"""connect accounts, escrow payments and payment transactions

Revision ID: 20261002_escrow_payments
Revises: 20261001_initial
Create Date: 2026-10-02 09:00:00
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261002_escrow_payments"
down_revision = "20261001_initial"
branch_labels = None
depends_on = None

ACTIVE_PAYMENT_WHERE = "status IN ('PENDING', 'HELD', 'COMPLETED')"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "connect_accounts",
        *_timestamps(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("external_account_id", sa.String(length=128), nullable=False, unique=True),
        sa.Column("charges_enabled", sa.Boolean(), nullable=False),
        sa.Column("payouts_enabled", sa.Boolean(), nullable=False),
        sa.Column("details_submitted", sa.Boolean(), nullable=False),
        sa.Column("disabled_reason", sa.String(length=255), nullable=True),
    )

    op.create_table(
        "escrow_payments",
        *_timestamps(),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False),
        sa.Column("tradie_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("helper_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("platform_fee_amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("external_payment_ref", sa.String(length=128), nullable=False, unique=True),
        sa.Column("destination_account_id", sa.String(length=128), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "HELD", "COMPLETED", "FAILED", "REFUNDED", name="paymentstatus"),
            nullable=False,
        ),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_id", sa.String(length=128), nullable=True),
        sa.Column("refund_reason", sa.String(length=500), nullable=True),
        sa.Column("failure_message", sa.String(length=500), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_escrow_payments_positive_amount"),
        sa.CheckConstraint("platform_fee_amount >= 0", name="ck_escrow_payments_fee_non_negative"),
    )
    op.create_index("ix_escrow_payments_status", "escrow_payments", ["status"])
    op.create_index("ix_escrow_payments_job_id", "escrow_payments", ["job_id"])
    op.create_index(
        "uq_escrow_payments_active_job",
        "escrow_payments",
        ["job_id"],
        unique=True,
        sqlite_where=sa.text(ACTIVE_PAYMENT_WHERE),
        postgresql_where=sa.text(ACTIVE_PAYMENT_WHERE),
    )

    op.create_table(
        "payment_transactions",
        *_timestamps(),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("escrow_payments.id"), nullable=False),
        sa.Column("kind", sa.Enum("CHARGE", "CAPTURE", "REFUND", name="transactionkind"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("platform_fee", sa.BigInteger(), nullable=False),
        sa.Column("processor_fee", sa.BigInteger(), nullable=False),
        sa.Column("net_amount", sa.BigInteger(), nullable=False),
        sa.Column("external_ref", sa.String(length=128), nullable=True),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payment_transactions_payment_id", "payment_transactions", ["payment_id"])


def downgrade() -> None:
    op.drop_index("ix_payment_transactions_payment_id", table_name="payment_transactions")
    op.drop_table("payment_transactions")
    op.drop_index("uq_escrow_payments_active_job", table_name="escrow_payments")
    op.drop_index("ix_escrow_payments_job_id", table_name="escrow_payments")
    op.drop_index("ix_escrow_payments_status", table_name="escrow_payments")
    op.drop_table("escrow_payments")
    op.drop_table("connect_accounts")
    sa.Enum(name="transactionkind").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="paymentstatus").drop(op.get_bind(), checkfirst=True)
