"""create_order_tables

Revision ID: 3c1f9a2e7b10
Revises: 
Create Date: 2026-10-16 09:00:00.000000+00:00

Creates the users, product and portfolio tables read by the order service,
and the orders, order_items and position tables it writes.
"""
import logging

from alembic import op
import sqlalchemy as sa

# Set up logging
logger = logging.getLogger("alembic.migration")

# revision identifiers, used by Alembic.
revision = '3c1f9a2e7b10'
down_revision = None
branch_labels = None
depends_on = None

ORDER_TYPE = sa.Enum("buy", "sell", name="order_type")
ORDER_STATUS = sa.Enum(
    "pending", "confirmed", "processing", "shipped", "delivered",
    name="order_status"
)
POSITION_STATUS = sa.Enum("active", "closed", name="position_status")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def upgrade():
    logger.info("Creating reference tables")
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "product",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("in_stock", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("stock_quantity", sa.Integer(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "portfolio",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("owner_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_portfolio_owner_id", "portfolio", ["owner_id"])

    logger.info("Creating order tables")
    op.create_table(
        "orders",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", ORDER_TYPE, nullable=False),
        sa.Column("status", ORDER_STATUS, nullable=False),
        sa.Column("order_number", sa.String(20), nullable=False, unique=True),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("subtotal", sa.Numeric(14, 2), nullable=False),
        sa.Column("taxes", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("abs(subtotal + taxes - total_amount) < 0.005", name="ck_orders_total_amount"),
        sa.CheckConstraint("subtotal >= 0 AND taxes >= 0", name="ck_orders_non_negative_amounts"),
    )
    op.create_index("ix_orders_user_id_status", "orders", ["user_id", "status"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("order_id", sa.Uuid(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("product.id"), nullable=False),
        sa.Column("position_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 4), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(14, 2), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_positive_quantity"),
        sa.CheckConstraint("unit_price >= 0", name="ck_order_items_non_negative_price"),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    logger.info("Creating position table")
    op.create_table(
        "position",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("product.id"), nullable=False),
        sa.Column("portfolio_id", sa.Uuid(), sa.ForeignKey("portfolio.id", ondelete="SET NULL"), nullable=True),
        sa.Column("purchase_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("purchase_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("market_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 4), nullable=False),
        sa.Column("custody_service_id", sa.Uuid(), nullable=True),
        sa.Column("status", POSITION_STATUS, nullable=False),
        sa.Column("closed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0 OR status = 'closed'", name="ck_position_positive_quantity"),
    )
    op.create_index("ix_position_user_id_status", "position", ["user_id", "status"])


def downgrade():
    for table in ("position", "order_items", "orders", "portfolio", "product", "users"):
        op.drop_table(table)

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_type in (POSITION_STATUS, ORDER_STATUS, ORDER_TYPE):
            enum_type.drop(bind, checkfirst=True)
