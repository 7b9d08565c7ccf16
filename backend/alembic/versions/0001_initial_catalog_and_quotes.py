"""initial catalog, templates and quotes

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(18, 6)
RATE = sa.Numeric(9, 6)
QTY = sa.Numeric(18, 4)
ORDER_QTY = sa.Numeric(18, 6)


def _snapshot_line_columns():
    return [
        sa.Column("supply_id", sa.Integer, nullable=False),
        sa.Column("supply_name", sa.String(255), nullable=False),
        sa.Column("unit_base", sa.String(20), nullable=False),
        sa.Column("qty", MONEY, nullable=False),
        sa.Column("cost_per_unit", MONEY, nullable=False),
        sa.Column("line_cost", MONEY, nullable=False),
        sa.Column("qty_formula", sa.String(255), nullable=False),
    ]


def _cost_columns():
    return [
        sa.Column("materials_cost", MONEY, nullable=False, server_default="0"),
        sa.Column("waste_cost", MONEY, nullable=False, server_default="0"),
        sa.Column("operational_cost", MONEY, nullable=False, server_default="0"),
        sa.Column("finishing_cost", MONEY, nullable=False, server_default="0"),
        sa.Column("cost_total", MONEY, nullable=False, server_default="0"),
    ]


def _discount_columns():
    return [
        sa.Column("discount_type", sa.String(20), nullable=True),
        sa.Column("discount_season", sa.String(20), nullable=True),
        sa.Column("discount_reason", sa.Text, nullable=True),
        sa.Column("discount_pct", sa.Numeric(9, 4), nullable=True),
    ]


def _workflow_columns():
    return [
        sa.Column("approved_by", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("approved_at", sa.DateTime, nullable=True),
        sa.Column("approved_reason", sa.String(255), nullable=True),
        sa.Column("created_by", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime, nullable=False),
        sa.Column("converted_by", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("converted_at", sa.DateTime, nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("email", sa.String, nullable=False, unique=True),
        sa.Column("password_hash", sa.String, nullable=False),
        sa.Column("full_name", sa.String, nullable=True),
        sa.Column("role_name", sa.String, nullable=False, server_default="sales"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint("role_name IN ('sales','supervisor','admin')", name="ck_user_role"),
    )

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("tax_id", sa.String(50), nullable=True),
        sa.Column("phone", sa.String, nullable=True),
        sa.Column("email", sa.String, nullable=True),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table(
        "supplies",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit_base", sa.String(20), nullable=False),
        sa.Column("cost_per_unit", MONEY, nullable=False, server_default="0"),
        sa.Column("stock", QTY, nullable=False, server_default="0"),
        sa.Column("default_qty_per_unit", MONEY, nullable=True),
        sa.Column("rounding", sa.String(10), nullable=False, server_default="none"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint("stock >= 0", name="ck_supply_stock"),
        sa.CheckConstraint("cost_per_unit >= 0", name="ck_supply_cpu"),
        sa.CheckConstraint(
            "unit_base IN ('piece','sheet','milliliter','meter','square-meter')",
            name="ck_supply_unit_base",
        ),
        sa.CheckConstraint("rounding IN ('none','ceil')", name="ck_supply_rounding"),
    )

    op.create_table(
        "supply_purchases",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("supply_id", sa.Integer, sa.ForeignKey("supplies.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("qty", QTY, nullable=False),
        sa.Column("total_cost", QTY, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("created_by", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint("qty > 0", name="ck_purchase_qty"),
        sa.CheckConstraint("total_cost >= 0", name="ck_purchase_total_cost"),
    )
    op.create_index("ix_purchases_supply", "supply_purchases", ["supply_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table(
        "product_templates",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("waste_pct", RATE, nullable=False, server_default="0.05"),
        sa.Column("margin_pct", RATE, nullable=False, server_default="0.4"),
        sa.Column("operational_pct", RATE, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("created_by", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint("product_id", "version", name="uix_template_product_version"),
    )
    op.create_index("ix_template_product_active", "product_templates", ["product_id", "is_active"])

    # supply_id carries no FK: a template may outlive a supply row
    op.create_table(
        "template_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("template_id", sa.Integer, sa.ForeignKey("product_templates.id", ondelete="CASCADE"), nullable=False),
        sa.Column("supply_id", sa.Integer, nullable=False),
        sa.Column("qty_formula", sa.String(255), nullable=False),
    )
    op.create_index("ix_template_items_template", "template_items", ["template_id"])

    op.create_table(
        "quotes",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("template_id", sa.Integer, sa.ForeignKey("product_templates.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("quantity", ORDER_QTY, nullable=False),
        sa.Column("finishing_level", sa.String(20), nullable=False, server_default="none"),
        sa.Column("apply_tax", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("tax_rate", RATE, nullable=False, server_default="0.15"),
        sa.Column("waste_pct", RATE, nullable=False),
        sa.Column("margin_pct", RATE, nullable=False),
        sa.Column("operational_pct", RATE, nullable=False),
        *_cost_columns(),
        sa.Column("min_price", MONEY, nullable=False, server_default="0"),
        sa.Column("suggested_price", MONEY, nullable=False, server_default="0"),
        sa.Column("price_final", MONEY, nullable=False, server_default="0"),
        sa.Column("tax_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("total", MONEY, nullable=False, server_default="0"),
        *_discount_columns(),
        *_workflow_columns(),
        sa.CheckConstraint("status IN ('draft','approved','converted','expired')", name="ck_quote_status"),
        sa.CheckConstraint("finishing_level IN ('none','basic','medium','premium')", name="ck_quote_finishing"),
    )
    op.create_index("ix_quotes_created_by", "quotes", ["created_by"])
    op.create_index("ix_quotes_status", "quotes", ["status"])

    op.create_table(
        "quote_lines",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("quote_id", sa.Integer, sa.ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False),
        *_snapshot_line_columns(),
    )
    op.create_index("ix_quote_lines_quote", "quote_lines", ["quote_id"])

    op.create_table(
        "quote_groups",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("price_final", MONEY, nullable=False, server_default="0"),
        sa.Column("tax_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("total", MONEY, nullable=False, server_default="0"),
        *_workflow_columns(),
        sa.CheckConstraint("status IN ('draft','approved','converted','expired')", name="ck_quote_group_status"),
    )
    op.create_index("ix_quote_groups_created_by", "quote_groups", ["created_by"])

    op.create_table(
        "quote_group_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("group_id", sa.Integer, sa.ForeignKey("quote_groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("template_id", sa.Integer, sa.ForeignKey("product_templates.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("quantity", ORDER_QTY, nullable=False),
        sa.Column("finishing_level", sa.String(20), nullable=False, server_default="none"),
        sa.Column("apply_tax", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("tax_rate", RATE, nullable=False, server_default="0.15"),
        *_cost_columns(),
        sa.Column("suggested_price", MONEY, nullable=False, server_default="0"),
        sa.Column("price_final", MONEY, nullable=False, server_default="0"),
        sa.Column("tax_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("total", MONEY, nullable=False, server_default="0"),
        *_discount_columns(),
        sa.UniqueConstraint("group_id", "position", name="uix_group_item_position"),
    )
    op.create_index("ix_group_items_group", "quote_group_items", ["group_id"])

    op.create_table(
        "quote_group_lines",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("group_item_id", sa.Integer, sa.ForeignKey("quote_group_items.id", ondelete="CASCADE"), nullable=False),
        *_snapshot_line_columns(),
    )
    op.create_index("ix_group_lines_item", "quote_group_lines", ["group_item_id"])


def downgrade() -> None:
    for table in (
        "quote_group_lines",
        "quote_group_items",
        "quote_groups",
        "quote_lines",
        "quotes",
        "template_items",
        "product_templates",
        "products",
        "supply_purchases",
        "supplies",
        "customers",
        "users",
    ):
        op.drop_table(table)
