"""Create metering tables.

Revision ID: a7c1e2d3f4b5
Revises:
Create Date: 2026-01-12 09:00:00.000000

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "a7c1e2d3f4b5"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    """Create config, period ledger, transaction log and alert tables."""
    op.create_table(
        "tenant_metering_config",
        *_audit_columns(),
        sa.Column("included_minutes", sa.Integer(), nullable=False),
        sa.Column("overage_policy", sa.String(20), nullable=False),
        sa.Column("overage_price_per_minute", sa.Integer(), nullable=False),
        sa.Column("max_overage_charge", sa.Integer(), nullable=False),
        sa.Column("alert_thresholds", postgresql.ARRAY(sa.Integer()), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("alert_channels", postgresql.ARRAY(sa.String(20)), nullable=False),
        sa.Column("email_recipients", postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column("webhook_url", sa.Text(), nullable=True),
        sa.Column("quiet_hours_start", sa.Integer(), nullable=True),
        sa.Column("quiet_hours_end", sa.Integer(), nullable=True),
        sa.Column("external_customer_id", sa.String(255), nullable=True),
        sa.Column("external_subscription_id", sa.String(255), nullable=True),
        sa.UniqueConstraint("tenant_id", name="uq_tenant_metering_config_tenant"),
        sa.CheckConstraint("included_minutes >= 0", name="ck_metering_config_included"),
        sa.CheckConstraint("overage_price_per_minute >= 0", name="ck_metering_config_price"),
        sa.CheckConstraint("max_overage_charge >= 0", name="ck_metering_config_max_charge"),
        sa.CheckConstraint(
            "overage_policy IN ('block', 'charge', 'notify_only')",
            name="ck_metering_config_policy",
        ),
    )
    op.create_index(
        "idx_metering_config_customer", "tenant_metering_config", ["external_customer_id"]
    )
    op.create_index(
        "idx_metering_config_subscription",
        "tenant_metering_config",
        ["external_subscription_id"],
    )

    op.create_table(
        "usage_period",
        *_audit_columns(),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("included_minutes_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("overage_minutes_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("overage_charges", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_calls", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "triggered_thresholds",
            postgresql.ARRAY(sa.Integer()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("blocked_reason", sa.String(50), nullable=True),
        sa.Column("blocked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_billed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("billed_reference", sa.String(255), nullable=True),
        sa.Column("billing_idempotency_key", sa.String(255), nullable=True),
        sa.Column("billed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invoice_reference", sa.String(255), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("period_end > period_start", name="ck_usage_period_bounds"),
        sa.CheckConstraint("included_minutes_used >= 0", name="ck_usage_period_included"),
        sa.CheckConstraint("overage_minutes_used >= 0", name="ck_usage_period_overage"),
        sa.CheckConstraint("overage_charges >= 0", name="ck_usage_period_charges"),
    )
    # One current period per tenant; rollover and lazy creation race on this
    op.create_index(
        "uq_usage_period_current_tenant",
        "usage_period",
        ["tenant_id"],
        unique=True,
        postgresql_where=sa.text("is_current"),
    )
    op.create_index("idx_usage_period_tenant_start", "usage_period", ["tenant_id", "period_start"])
    op.create_index(
        "idx_usage_period_unbilled",
        "usage_period",
        ["is_billed", "period_end"],
        postgresql_where=sa.text("overage_minutes_used > 0 AND NOT is_billed"),
    )
    op.create_index(
        "idx_usage_period_idempotency_key", "usage_period", ["billing_idempotency_key"]
    )

    op.create_table(
        "usage_transaction",
        *_audit_columns(),
        sa.Column("period_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("call_reference", sa.String(255), nullable=False),
        sa.Column("seconds_used", sa.Integer(), nullable=False),
        sa.Column("minutes_billed", sa.Integer(), nullable=False),
        sa.Column("included_portion", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("overage_portion", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("charge_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_overage", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("billed_reference", sa.String(255), nullable=True),
        sa.Column("call_metadata", postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(
            ["period_id"],
            ["usage_period.id"],
            name="fk_usage_transaction_period_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("tenant_id", "call_reference", name="uq_usage_transaction_call_ref"),
        sa.CheckConstraint("seconds_used > 0", name="ck_usage_transaction_seconds"),
        sa.CheckConstraint(
            "included_portion + overage_portion = minutes_billed",
            name="ck_usage_transaction_portions",
        ),
    )
    op.create_index("idx_usage_transaction_period", "usage_transaction", ["period_id"])
    op.create_index(
        "idx_usage_transaction_tenant_recorded", "usage_transaction", ["tenant_id", "recorded_at"]
    )

    op.create_table(
        "usage_alert",
        *_audit_columns(),
        sa.Column("period_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("threshold", sa.Integer(), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("usage_percent", sa.Float(), nullable=False),
        sa.Column("minutes_used", sa.Integer(), nullable=False),
        sa.Column("included_minutes", sa.Integer(), nullable=False),
        sa.Column("overage_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("overage_charges", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("action_url", sa.Text(), nullable=True),
        sa.Column("sent_via", postgresql.ARRAY(sa.String(20)), nullable=False),
        sa.Column("acknowledged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["period_id"], ["usage_period.id"], name="fk_usage_alert_period_id", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("tenant_id", "period_id", "threshold", name="uq_usage_alert_dedup"),
    )
    op.create_index(
        "idx_usage_alert_tenant_ack", "usage_alert", ["tenant_id", "acknowledged", "created_at"]
    )


def downgrade():
    """Drop the metering tables."""
    op.drop_table("usage_alert")
    op.drop_table("usage_transaction")
    op.drop_table("usage_period")
    op.drop_table("tenant_metering_config")
