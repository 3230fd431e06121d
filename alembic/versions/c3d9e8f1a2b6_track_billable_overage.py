"""Track billable overage separately from accrued overage.

Revision ID: c3d9e8f1a2b6
Revises: a7c1e2d3f4b5
Create Date: 2026-10-19 10:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "c3d9e8f1a2b6"
down_revision = "a7c1e2d3f4b5"
branch_labels = None
depends_on = None


def upgrade():
    """Add billable counters and the per-transaction policy stamp, then backfill."""
    op.add_column(
        "usage_transaction",
        sa.Column("overage_policy", sa.String(20), nullable=False, server_default="charge"),
    )
    op.add_column(
        "usage_period",
        sa.Column("billable_overage_minutes", sa.Integer(), nullable=False, server_default="0"),
    )
    op.add_column(
        "usage_period",
        sa.Column("billable_charges", sa.Integer(), nullable=False, server_default="0"),
    )

    # Existing rows have no record of the policy they accrued under; the
    # tenant's policy at upgrade time is the best available answer.
    op.execute(
        """
        UPDATE usage_transaction AS t
        SET overage_policy = c.overage_policy
        FROM tenant_metering_config AS c
        WHERE c.tenant_id = t.tenant_id
        """
    )
    op.execute(
        """
        UPDATE usage_period AS p
        SET billable_overage_minutes = s.minutes, billable_charges = s.charges
        FROM (
            SELECT period_id, SUM(overage_portion) AS minutes, SUM(charge_amount) AS charges
            FROM usage_transaction
            WHERE overage_policy = 'charge'
            GROUP BY period_id
        ) AS s
        WHERE s.period_id = p.id
        """
    )

    op.create_check_constraint(
        "ck_usage_period_billable_minutes",
        "usage_period",
        "billable_overage_minutes BETWEEN 0 AND overage_minutes_used",
    )
    op.create_check_constraint(
        "ck_usage_period_billable_charges",
        "usage_period",
        "billable_charges BETWEEN 0 AND overage_charges",
    )
    op.drop_index("idx_usage_period_unbilled", table_name="usage_period")
    op.create_index(
        "idx_usage_period_unbilled",
        "usage_period",
        ["is_billed", "period_end"],
        postgresql_where=sa.text("billable_overage_minutes > 0 AND NOT is_billed"),
    )


def downgrade():
    """Drop the billable counters and the policy stamp."""
    op.drop_index("idx_usage_period_unbilled", table_name="usage_period")
    op.create_index(
        "idx_usage_period_unbilled",
        "usage_period",
        ["is_billed", "period_end"],
        postgresql_where=sa.text("overage_minutes_used > 0 AND NOT is_billed"),
    )
    op.drop_constraint("ck_usage_period_billable_charges", "usage_period", type_="check")
    op.drop_constraint("ck_usage_period_billable_minutes", "usage_period", type_="check")
    op.drop_column("usage_period", "billable_charges")
    op.drop_column("usage_period", "billable_overage_minutes")
    op.drop_column("usage_transaction", "overage_policy")
