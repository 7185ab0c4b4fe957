"""Baseline schema: users, positions, orders.

Revision ID: 001_baseline
Revises:
Create Date: 2025-10-19

Positions are keyed by (user_id, symbol) so the ledger can insert-if-absent
and then lock exactly one row per holding.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_baseline"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("username", sa.String(30), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )

    op.create_table(
        "positions",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("symbol", sa.String(20), nullable=False),
        sa.Column("qty", sa.Numeric(20, 8), nullable=False, server_default="0"),
        sa.Column("avg_cost", sa.Numeric(20, 8), nullable=False, server_default="0"),
        sa.Column("realized_pnl", sa.Numeric(20, 8), nullable=False, server_default="0"),
        sa.Column("last_trade_ts", sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint("user_id", "symbol", name="pk_positions"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_positions_user_id_users", ondelete="CASCADE",
        ),
        sa.CheckConstraint("qty >= 0", name="ck_positions_qty_non_negative"),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("symbol", sa.String(20), nullable=False),
        sa.Column("side", sa.String(4), nullable=False),
        sa.Column("qty", sa.Numeric(20, 8), nullable=False),
        sa.Column("price", sa.Numeric(20, 8), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_orders"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_orders_user_id_users", ondelete="CASCADE",
        ),
        sa.CheckConstraint("side IN ('BUY', 'SELL')", name="ck_orders_side"),
        sa.CheckConstraint("qty > 0", name="ck_orders_qty_positive"),
        sa.CheckConstraint("price > 0", name="ck_orders_price_positive"),
    )
    op.create_index(
        "idx_orders_user_created",
        "orders",
        ["user_id", sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_orders_user_created", table_name="orders")
    op.drop_table("orders")
    op.drop_table("positions")
    op.drop_table("users")
