"""Purchase core schema.

Revision ID: 001
Revises:
Create Date: 2025-07-02

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        nullable=False,
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def upgrade() -> None:
    """Create purchase, policy and commission tables."""
    op.execute("CREATE SEQUENCE IF NOT EXISTS policy_number_seq START 1")

    # Policies
    op.create_table(
        "policies",
        _id_column(),
        sa.Column("policy_number", sa.String(20), nullable=False),
        sa.Column("line_of_business", sa.String(20), nullable=False),
        sa.Column("insurer_id", sa.String(100), nullable=False),
        sa.Column("product_id", sa.String(100), nullable=False),
        sa.Column("policy_status", sa.String(20), nullable=False, server_default="Issued"),
        sa.Column("source", sa.String(50), nullable=False, server_default="Online Purchase"),
        sa.Column("initiated_by_role", sa.String(20), nullable=False),
        sa.Column("initiated_by_id", sa.String(100), nullable=False),
        sa.Column("premium_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("employee_id", sa.String(100), nullable=True),
        sa.Column("agent_id", sa.String(100), nullable=True),
        sa.Column("customer_id", sa.String(100), nullable=True),
        sa.Column("quote_session_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "policy_data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default="{}",
        ),
        *_timestamp_columns(),
        sa.UniqueConstraint("policy_number", name=op.f("uq_policies_policy_number")),
        sa.UniqueConstraint("quote_session_id", name=op.f("uq_policies_quote_session_id")),
        sa.CheckConstraint(
            "policy_status IN ('Pending', 'Issued', 'Active', 'Cancelled', 'Expired')",
            name=op.f("ck_policies_policy_status"),
        ),
        sa.CheckConstraint("premium_amount >= 0", name=op.f("ck_policies_premium")),
    )
    op.create_index(op.f("ix_policies_agent_id"), "policies", ["agent_id"])

    # Quote sessions
    op.create_table(
        "quote_sessions",
        _id_column(),
        sa.Column("phone_number", sa.String(100), nullable=False),
        sa.Column("line_of_business", sa.String(20), nullable=True),
        sa.Column("product_id", sa.String(100), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=True),
        sa.Column("selected_insurer_id", sa.String(100), nullable=True),
        sa.Column("selected_insurer_name", sa.String(255), nullable=True),
        sa.Column("selected_quote", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "addons_selected",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default="[]",
        ),
        sa.Column("proposal_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("payment_result", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("current_step", sa.String(20), nullable=False, server_default="LOB"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("is_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("policy_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("discarded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamp_columns(),
        sa.ForeignKeyConstraint(
            ["policy_id"],
            ["policies.id"],
            name=op.f("fk_quote_sessions_policy_id_policies"),
            ondelete="SET NULL",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'success', 'failed')",
            name=op.f("ck_quote_sessions_payment_status"),
        ),
    )
    op.create_index(
        "ix_quote_sessions_active",
        "quote_sessions",
        ["phone_number", "updated_at"],
        postgresql_where=sa.text("is_complete = false AND discarded_at IS NULL"),
    )

    # Status history and audit log
    op.create_table(
        "policy_status_history",
        _id_column(),
        sa.Column("policy_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("previous_status", sa.String(20), nullable=True),
        sa.Column("new_status", sa.String(20), nullable=False),
        sa.Column("updated_by", sa.String(100), nullable=False),
        sa.Column("changed_by_role", sa.String(20), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["policy_id"],
            ["policies.id"],
            name=op.f("fk_policy_status_history_policy_id_policies"),
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        op.f("ix_policy_status_history_policy_id"), "policy_status_history", ["policy_id"]
    )

    op.create_table(
        "audit_logs",
        _id_column(),
        sa.Column("event", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("policy_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(op.f("ix_audit_logs_policy_id"), "audit_logs", ["policy_id"])

    # Commission rules
    op.create_table(
        "commission_rules",
        _id_column(),
        sa.Column("rule_type", sa.String(20), nullable=False),
        sa.Column("insurer_id", sa.String(100), nullable=False),
        sa.Column("product_id", sa.String(100), nullable=True),
        sa.Column("line_of_business", sa.String(20), nullable=False),
        sa.Column("channel", sa.String(50), nullable=True),
        sa.Column("policy_year", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("valid_from", sa.Date(), nullable=False),
        sa.Column("valid_to", sa.Date(), nullable=True),
        sa.Column("base_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("flat_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("unit_type", sa.String(20), nullable=True),
        sa.Column("campaign_name", sa.String(255), nullable=True),
        sa.Column("campaign_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("campaign_valid_from", sa.Date(), nullable=True),
        sa.Column("campaign_valid_to", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="Active"),
        *_timestamp_columns(),
        sa.CheckConstraint(
            "rule_type IN ('Fixed', 'Slab', 'Flat', 'Renewal', 'Bonus', 'Tiered', 'Campaign')",
            name=op.f("ck_commission_rules_rule_type"),
        ),
        sa.CheckConstraint(
            "base_rate IS NULL OR (base_rate >= 0 AND base_rate <= 100)",
            name=op.f("ck_commission_rules_base_rate"),
        ),
        sa.CheckConstraint(
            "valid_to IS NULL OR valid_to >= valid_from",
            name=op.f("ck_commission_rules_window"),
        ),
    )
    op.create_index(
        "ix_commission_rules_scope",
        "commission_rules",
        ["insurer_id", "line_of_business", "policy_year", "status"],
    )

    op.create_table(
        "commission_slabs",
        _id_column(),
        sa.Column("rule_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("min_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("max_value", sa.Numeric(14, 2), nullable=True),
        sa.Column("rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("slab_type", sa.String(20), nullable=False, server_default="Premium"),
        sa.ForeignKeyConstraint(
            ["rule_id"],
            ["commission_rules.id"],
            name=op.f("fk_commission_slabs_rule_id_commission_rules"),
            ondelete="CASCADE",
        ),
        sa.CheckConstraint(
            "max_value IS NULL OR max_value >= min_value",
            name=op.f("ck_commission_slabs_bounds"),
        ),
    )

    op.create_table(
        "commission_business_bonus",
        _id_column(),
        sa.Column("rule_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("min_gwp", sa.Numeric(16, 2), nullable=False),
        sa.Column("max_gwp", sa.Numeric(16, 2), nullable=True),
        sa.Column("bonus_rate", sa.Numeric(5, 2), nullable=False),
        sa.ForeignKeyConstraint(
            ["rule_id"],
            ["commission_rules.id"],
            name=op.f("fk_commission_business_bonus_rule_id_commission_rules"),
            ondelete="CASCADE",
        ),
    )

    op.create_table(
        "irdai_commission_caps",
        _id_column(),
        sa.Column("line_of_business", sa.String(20), nullable=False),
        sa.Column("policy_year", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("channel", sa.String(50), nullable=True),
        sa.Column("max_commission_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=False),
        sa.Column("effective_to", sa.Date(), nullable=True),
    )

    # Commission outcomes
    op.create_table(
        "commissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column("policy_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("rule_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("agent_id", sa.String(100), nullable=True),
        sa.Column("commission_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("commission_rate", sa.Numeric(7, 2), nullable=False),
        sa.Column("commission_type", sa.String(20), nullable=False, server_default="Initial"),
        sa.Column("status", sa.String(20), nullable=False, server_default="Pending"),
        *_timestamp_columns(),
        sa.ForeignKeyConstraint(
            ["policy_id"],
            ["policies.id"],
            name=op.f("fk_commissions_policy_id_policies"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["rule_id"],
            ["commission_rules.id"],
            name=op.f("fk_commissions_rule_id_commission_rules"),
            ondelete="SET NULL",
        ),
    )
    op.create_index(op.f("ix_commissions_policy_id"), "commissions", ["policy_id"])

    op.create_table(
        "payout_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column("policy_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("agent_id", sa.String(100), nullable=False),
        sa.Column("commission_rule_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("payout_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("payout_date", sa.Date(), nullable=False),
        sa.Column("payout_status", sa.String(20), nullable=False, server_default="Pending"),
        sa.Column("payment_mode", sa.String(50), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        *_timestamp_columns(),
        sa.ForeignKeyConstraint(
            ["policy_id"],
            ["policies.id"],
            name=op.f("fk_payout_transactions_policy_id_policies"),
            ondelete="CASCADE",
        ),
    )

    # Payments
    op.create_table(
        "payment_records",
        _id_column(),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("gateway", sa.String(20), nullable=False),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("transaction_id", sa.String(100), nullable=True),
        sa.Column("gateway_response", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamp_columns(),
        sa.CheckConstraint(
            "status IN ('pending', 'success', 'failed')",
            name=op.f("ck_payment_records_status"),
        ),
    )


def downgrade() -> None:
    """Drop purchase core schema."""
    for table in (
        "payment_records",
        "payout_transactions",
        "commissions",
        "irdai_commission_caps",
        "commission_business_bonus",
        "commission_slabs",
        "commission_rules",
        "audit_logs",
        "policy_status_history",
        "quote_sessions",
        "policies",
    ):
        op.drop_table(table)
    op.execute("DROP SEQUENCE IF EXISTS policy_number_seq")
