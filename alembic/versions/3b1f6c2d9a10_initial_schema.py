"""Initial schema: vendors, markets, bookings, announcements

Revision ID: 3b1f6c2d9a10
Revises:
Create Date: 2025-09-14 10:12:47.503118

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "3b1f6c2d9a10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    op.create_table(
        "vendors",
        sa.Column("id", sa.String, primary_key=True, index=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("is_admin", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("password_hash", sa.String, nullable=True),
        sa.Column("chat_id", sa.BigInteger, nullable=True, unique=True),
    )

    op.create_table(
        "markets",
        sa.Column("id", sa.String, primary_key=True, index=True),
        sa.Column("city", sa.String, nullable=False),
        sa.Column("name", sa.String, nullable=False),
    )

    # vendor_id без внешнего ключа: история бронирований переживает удаление продавца
    op.create_table(
        "bookings",
        sa.Column("id", sa.String, primary_key=True, index=True),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("market_id", sa.String, sa.ForeignKey("markets.id"), nullable=False),
        sa.Column("market_name", sa.String, nullable=False),
        sa.Column("market_city", sa.String, nullable=False),
        sa.Column("vendor_id", sa.String, nullable=False),
        sa.Column("vendor_name", sa.String, nullable=False),
        sa.Column("remark", sa.String, nullable=True),
        sa.Column("sales_quantity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_bookings_date", "bookings", ["date"])
    op.create_index("ix_bookings_market_id", "bookings", ["market_id"])
    op.create_index("ix_bookings_vendor_id", "bookings", ["vendor_id"])

    op.create_table(
        "announcements",
        sa.Column("id", sa.String, primary_key=True, index=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )


def downgrade() -> None:
    """Downgrade schema."""

    op.drop_table("announcements")

    op.drop_index("ix_bookings_vendor_id", "bookings")
    op.drop_index("ix_bookings_market_id", "bookings")
    op.drop_index("ix_bookings_date", "bookings")
    op.drop_table("bookings")

    op.drop_table("markets")
    op.drop_table("vendors")
