"""Initial schema: events, ticket types, price tiers, promo codes, holds.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_events_id", "events", ["id"])

    # Ticket types carry the ledger counters
    op.create_table(
        "ticket_types",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("sold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("held", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("fee_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("per_order_limit", sa.Integer(), nullable=True),
        sa.Column("sales_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sales_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("capacity >= 0", name="check_ticket_type_capacity_non_negative"),
        sa.CheckConstraint("sold >= 0", name="check_ticket_type_sold_non_negative"),
        sa.CheckConstraint("held >= 0", name="check_ticket_type_held_non_negative"),
        # OVERSELL GUARD: the ledger's guarded updates already enforce this,
        # the constraint catches anything that bypasses them.
        sa.CheckConstraint("sold + held <= capacity", name="check_ticket_type_no_oversell"),
        sa.CheckConstraint("price_cents >= 0", name="check_ticket_type_price_non_negative"),
        sa.CheckConstraint("fee_cents >= 0", name="check_ticket_type_fee_non_negative"),
        sa.CheckConstraint(
            "per_order_limit IS NULL OR per_order_limit > 0",
            name="check_ticket_type_per_order_limit_positive",
        ),
    )
    op.create_index("ix_ticket_types_id", "ticket_types", ["id"])
    op.create_index("ix_ticket_types_event_id", "ticket_types", ["event_id"])

    op.create_table(
        "ticket_price_tiers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "ticket_type_id",
            sa.Integer(),
            sa.ForeignKey("ticket_types.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("min_qty", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("fee_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("min_qty >= 1", name="check_price_tier_min_qty_positive"),
        sa.CheckConstraint("price_cents >= 0", name="check_price_tier_price_non_negative"),
        sa.CheckConstraint("fee_cents >= 0", name="check_price_tier_fee_non_negative"),
    )
    op.create_index("ix_ticket_price_tiers_id", "ticket_price_tiers", ["id"])
    op.create_index(
        "ix_price_tiers_ticket_type_starts_at", "ticket_price_tiers", ["ticket_type_id", "starts_at"]
    )

    op.create_table(
        "promo_codes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=True),
        sa.Column("discount_type", sa.String(20), nullable=False),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("redemptions", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("discount_type IN ('percentage', 'fixed')", name="check_promo_discount_type"),
        sa.CheckConstraint("discount_value >= 0", name="check_promo_discount_value_non_negative"),
        sa.CheckConstraint(
            "discount_type != 'percentage' OR discount_value <= 100",
            name="check_promo_percentage_lte_100",
        ),
    )
    op.create_index("ix_promo_codes_id", "promo_codes", ["id"])
    op.create_index("ix_promo_codes_code", "promo_codes", ["code"], unique=True)

    op.create_table(
        "holds",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("ticket_type_id", sa.Integer(), sa.ForeignKey("ticket_types.id"), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("quantity >= 1", name="check_hold_quantity_positive"),
        sa.CheckConstraint("expires_at > created_at", name="check_hold_expires_after_created"),
        sa.CheckConstraint(
            "reason IN ('checkout', 'reservation', 'organizer_hold')",
            name="check_hold_reason",
        ),
        sa.CheckConstraint(
            "status IN ('active', 'committed', 'released', 'expired')",
            name="check_hold_status",
        ),
    )
    op.create_index("ix_holds_id", "holds", ["id"])
    # INDEX FOR THE EXPIRY SWEEPER: every pass runs
    #   WHERE status = 'active' AND expires_at <= now() ORDER BY expires_at
    # Without it the sweeper scans the whole (ever-growing) holds history.
    op.create_index("ix_holds_status_expires_at", "holds", ["status", "expires_at"])
    op.create_index("ix_holds_event_id_expires_at", "holds", ["event_id", "expires_at"])
    op.create_index("ix_holds_ticket_type_id_status", "holds", ["ticket_type_id", "status"])


def downgrade() -> None:
    op.drop_table("holds")
    op.drop_table("promo_codes")
    op.drop_table("ticket_price_tiers")
    op.drop_table("ticket_types")
    op.drop_table("events")
