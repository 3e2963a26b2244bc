"""Initial schema — customers, catalog, delivery cycles, subscriptions, orders, preorders, promo codes.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _personalization_columns() -> list[sa.Column]:
    return [
        sa.Column("wants_personalization", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("sports", sa.JSON(), nullable=True),
        sa.Column("sport_other", sa.Text(), nullable=True),
        sa.Column("colors", sa.JSON(), nullable=True),
        sa.Column("flavors", sa.JSON(), nullable=True),
        sa.Column("flavor_other", sa.Text(), nullable=True),
        sa.Column("dietary", sa.JSON(), nullable=True),
        sa.Column("dietary_other", sa.Text(), nullable=True),
        sa.Column("size_upper", sa.String(8), nullable=True),
        sa.Column("size_lower", sa.String(8), nullable=True),
        sa.Column("additional_notes", sa.Text(), nullable=True),
    ]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # --- customers ---
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("is_subscriber", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_staff", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    # --- addresses ---
    op.create_table(
        "addresses",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("city", sa.String(128), nullable=False),
        sa.Column("postal_code", sa.String(16), nullable=False),
        sa.Column("street_address", sa.String(255), nullable=False),
        sa.Column("building_entrance", sa.String(32), nullable=True),
        sa.Column("floor", sa.String(16), nullable=True),
        sa.Column("apartment", sa.String(16), nullable=True),
        sa.Column("delivery_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_addresses_customer_id", "addresses", ["customer_id"])

    # --- box_types ---
    op.create_table(
        "box_types",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("price_eur", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_subscription", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_premium", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("sort_order", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    # --- site_config ---
    op.create_table(
        "site_config",
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )

    # --- delivery_cycles ---
    op.create_table(
        "delivery_cycles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("delivery_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), server_default="upcoming", nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_revealed", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("revealed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("delivery_date"),
    )
    op.create_index("ix_delivery_cycles_status", "delivery_cycles", ["status"])

    # --- promo_codes ---
    op.create_table(
        "promo_codes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("current_uses", sa.Integer(), server_default="0", nullable=False),
        sa.Column("max_uses_per_user", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sa.CheckConstraint("discount_percent > 0 AND discount_percent <= 100", name="ck_promo_discount_range"),
    )

    # --- subscriptions ---
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("box_type", sa.String(64), nullable=False),
        sa.Column("frequency", sa.String(16), server_default="monthly", nullable=False),
        sa.Column("status", sa.String(16), server_default="active", nullable=False),
        *_personalization_columns(),
        sa.Column("promo_code", sa.String(64), nullable=True),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=True),
        sa.Column("base_price_eur", sa.Numeric(10, 2), nullable=False),
        sa.Column("current_price_eur", sa.Numeric(10, 2), nullable=False),
        sa.Column("default_address_id", sa.Integer(), nullable=True),
        sa.Column("first_cycle_id", sa.Integer(), nullable=True),
        sa.Column("last_delivered_cycle_id", sa.Integer(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("paused_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["default_address_id"], ["addresses.id"]),
        sa.ForeignKeyConstraint(["first_cycle_id"], ["delivery_cycles.id"]),
        sa.ForeignKeyConstraint(["last_delivered_cycle_id"], ["delivery_cycles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("frequency IN ('monthly', 'seasonal')", name="ck_subscription_frequency"),
        sa.CheckConstraint(
            "status IN ('active', 'paused', 'cancelled', 'expired')", name="ck_subscription_status"
        ),
    )
    op.create_index("ix_subscriptions_customer_id", "subscriptions", ["customer_id"])
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])

    # --- subscription_history ---
    op.create_table(
        "subscription_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("subscription_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("performed_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"]),
        sa.ForeignKeyConstraint(["performed_by"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_subscription_history_subscription_id", "subscription_history", ["subscription_id"])

    # --- orders ---
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=False),
        sa.Column("customer_full_name", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(32), nullable=True),
        sa.Column("shipping_address", sa.JSON(), nullable=False),
        sa.Column("address_id", sa.Integer(), nullable=True),
        sa.Column("box_type", sa.String(64), nullable=False),
        *_personalization_columns(),
        sa.Column("promo_code", sa.String(64), nullable=True),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=True),
        sa.Column("original_price_eur", sa.Numeric(10, 2), nullable=False),
        sa.Column("final_price_eur", sa.Numeric(10, 2), nullable=False),
        sa.Column("subscription_id", sa.Integer(), nullable=True),
        sa.Column("delivery_cycle_id", sa.Integer(), nullable=True),
        sa.Column("order_type", sa.String(32), server_default="one-time", nullable=False),
        sa.Column("status", sa.String(32), server_default="pending", nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["address_id"], ["addresses.id"]),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"]),
        sa.ForeignKeyConstraint(["delivery_cycle_id"], ["delivery_cycles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number"),
        sa.UniqueConstraint("subscription_id", "delivery_cycle_id", name="uq_order_subscription_cycle"),
    )
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])
    op.create_index("ix_orders_subscription_id", "orders", ["subscription_id"])

    # --- preorders ---
    op.create_table(
        "preorders",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("box_type", sa.String(64), nullable=False),
        *_personalization_columns(),
        sa.Column("promo_code", sa.String(64), nullable=True),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=True),
        sa.Column("original_price_eur", sa.Numeric(10, 2), nullable=True),
        sa.Column("final_price_eur", sa.Numeric(10, 2), nullable=True),
        sa.Column("conversion_status", sa.String(16), server_default="pending", nullable=False),
        sa.Column("conversion_token", sa.String(64), nullable=True),
        sa.Column("conversion_token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("converted_to_order_id", sa.Integer(), nullable=True),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["converted_to_order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number"),
        sa.UniqueConstraint("conversion_token"),
    )
    op.create_index("ix_preorders_email", "preorders", ["email"])
    op.create_index("ix_preorders_customer_id", "preorders", ["customer_id"])
    op.create_index("ix_preorders_conversion_status", "preorders", ["conversion_status"])

    # --- promo_code_usages ---
    op.create_table(
        "promo_code_usages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("promo_code_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("used_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["promo_code_id"], ["promo_codes.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("promo_code_id", "order_id", name="uq_promo_usage_order"),
    )
    op.create_index("ix_promo_code_usages_promo_code_id", "promo_code_usages", ["promo_code_id"])
    op.create_index("ix_promo_code_usages_customer_id", "promo_code_usages", ["customer_id"])


def downgrade() -> None:
    op.drop_table("promo_code_usages")
    op.drop_table("preorders")
    op.drop_table("orders")
    op.drop_table("subscription_history")
    op.drop_table("subscriptions")
    op.drop_table("promo_codes")
    op.drop_table("delivery_cycles")
    op.drop_table("site_config")
    op.drop_table("box_types")
    op.drop_table("addresses")
    op.drop_table("customers")
