"""init schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("external_id", sa.String(length=120), nullable=True),
        sa.Column("email", sa.String(length=200), nullable=True),
        sa.Column("name", sa.String(length=160), nullable=True),
        sa.Column("investor_profile_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_external_id", "users", ["external_id"], unique=True)
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "properties",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=64), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("state", sa.String(length=2), nullable=True),
        sa.Column("zip", sa.String(length=10), nullable=True),
        sa.Column("foreclosure", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("pre_foreclosure", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("tax_delinquent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("vacant", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("bankruptcy", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("absentee_owner", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("score_breakdown_json", sa.Text(), nullable=True),
        sa.Column("enriched", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("phone_numbers_json", sa.Text(), nullable=True),
        sa.Column("emails_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_properties_user_id", "properties", ["user_id"])

    op.create_table(
        "deal_specs",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=64), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=True),
        sa.Column("max_exposure_usd", sa.Float(), nullable=False, server_default="0"),
        sa.Column("target_roi_pct", sa.Float(), nullable=False, server_default="0"),
        sa.Column("arv", sa.Float(), nullable=True),
        sa.Column("region", sa.String(length=80), nullable=True),
        sa.Column("grade", sa.String(length=40), nullable=True),
        sa.Column("start_at", sa.DateTime(), nullable=True),
        sa.Column("daily_burn_usd", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_deal_specs_user_id", "deal_specs", ["user_id"])
    op.create_index("ix_deal_specs_created_at", "deal_specs", ["created_at"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("deal_id", sa.String(length=64), sa.ForeignKey("deal_specs.id"), nullable=True),
        sa.Column("actor", sa.String(length=120), nullable=False),
        sa.Column("artifact", sa.String(length=80), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("gate", sa.String(length=4), nullable=True),
        sa.Column("checksum", sa.String(length=64), nullable=False),
        sa.Column("diff_json", sa.Text(), nullable=True),
        sa.Column("ts", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_events_deal_ts", "events", ["deal_id", "ts"])
    op.create_index("ix_events_artifact_action", "events", ["artifact", "action"])
    op.create_index("ix_events_gate", "events", ["gate"])

    op.create_table(
        "budget_ledgers",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("deal_id", sa.String(length=64), sa.ForeignKey("deal_specs.id"), nullable=False),
        sa.Column("baseline_json", sa.Text(), nullable=True),
        sa.Column("committed_json", sa.Text(), nullable=True),
        sa.Column("actuals_json", sa.Text(), nullable=True),
        sa.Column("variance_json", sa.Text(), nullable=True),
        sa.Column("contingency_remaining", sa.Float(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("deal_id", name="uq_budget_ledgers_deal"),
    )

    op.create_table(
        "change_orders",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("deal_id", sa.String(length=64), sa.ForeignKey("deal_specs.id"), nullable=False),
        sa.Column("trade", sa.String(length=80), nullable=False),
        sa.Column("delta_usd", sa.Float(), nullable=False, server_default="0"),
        sa.Column("impact_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rationale", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="proposed"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_change_orders_deal_id", "change_orders", ["deal_id"])

    op.create_table(
        "vendors",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("trade", sa.String(length=80), nullable=True),
        sa.Column("reliability_score", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "bids",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("deal_id", sa.String(length=64), sa.ForeignKey("deal_specs.id"), nullable=False),
        sa.Column("vendor_id", sa.String(length=64), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("trade", sa.String(length=80), nullable=True),
        sa.Column("subtotal", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_bids_deal_id", "bids", ["deal_id"])
    op.create_index("ix_bids_vendor_id", "bids", ["vendor_id"])

    op.create_table(
        "invoices",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("deal_id", sa.String(length=64), sa.ForeignKey("deal_specs.id"), nullable=False),
        sa.Column("vendor_id", sa.String(length=64), sa.ForeignKey("vendors.id"), nullable=True),
        sa.Column("trade", sa.String(length=80), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_invoices_deal_id", "invoices", ["deal_id"])
    op.create_index("ix_invoices_vendor_id", "invoices", ["vendor_id"])

    op.create_table(
        "policies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("region", sa.String(length=80), nullable=False),
        sa.Column("grade", sa.String(length=40), nullable=False),
        sa.Column("max_exposure_usd", sa.Float(), nullable=False),
        sa.Column("target_roi_pct", sa.Float(), nullable=False),
        sa.Column("contingency_target_pct", sa.Float(), nullable=True),
        sa.UniqueConstraint("region", "grade", name="uq_policies_region_grade"),
    )

    op.create_table(
        "scope_nodes",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("deal_id", sa.String(length=64), sa.ForeignKey("deal_specs.id"), nullable=False),
        sa.Column("trade", sa.String(length=80), nullable=False),
        sa.Column("task", sa.String(length=120), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False, server_default="0"),
        sa.Column("unit", sa.String(length=20), nullable=False),
    )
    op.create_index("ix_scope_nodes_deal_id", "scope_nodes", ["deal_id"])

    op.create_table(
        "cost_models",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("region", sa.String(length=80), nullable=False),
        sa.Column("grade", sa.String(length=40), nullable=False),
        sa.Column("trade", sa.String(length=80), nullable=False),
        sa.Column("task", sa.String(length=120), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=False),
        sa.Column("material", sa.Float(), nullable=False, server_default="0"),
        sa.Column("labor", sa.Float(), nullable=False, server_default="0"),
        sa.Column("contingency_pct", sa.Float(), nullable=False, server_default="0"),
        sa.Column("risk_premium_pct", sa.Float(), nullable=False, server_default="0"),
        sa.UniqueConstraint("region", "grade", "trade", "task", "unit", name="uq_cost_models_key"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=False, server_default="seen"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_notifications_event_id", "notifications", ["event_id"], unique=True)


def downgrade():
    op.drop_index("ix_notifications_event_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("cost_models")
    op.drop_index("ix_scope_nodes_deal_id", table_name="scope_nodes")
    op.drop_table("scope_nodes")
    op.drop_table("policies")
    op.drop_index("ix_invoices_vendor_id", table_name="invoices")
    op.drop_index("ix_invoices_deal_id", table_name="invoices")
    op.drop_table("invoices")
    op.drop_index("ix_bids_vendor_id", table_name="bids")
    op.drop_index("ix_bids_deal_id", table_name="bids")
    op.drop_table("bids")
    op.drop_table("vendors")
    op.drop_index("ix_change_orders_deal_id", table_name="change_orders")
    op.drop_table("change_orders")
    op.drop_table("budget_ledgers")
    op.drop_index("ix_events_gate", table_name="events")
    op.drop_index("ix_events_artifact_action", table_name="events")
    op.drop_index("ix_events_deal_ts", table_name="events")
    op.drop_table("events")
    op.drop_index("ix_deal_specs_created_at", table_name="deal_specs")
    op.drop_index("ix_deal_specs_user_id", table_name="deal_specs")
    op.drop_table("deal_specs")
    op.drop_index("ix_properties_user_id", table_name="properties")
    op.drop_table("properties")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_external_id", table_name="users")
    op.drop_table("users")
