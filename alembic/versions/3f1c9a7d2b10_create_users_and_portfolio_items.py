"""create users and portfolio_items

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-17 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("hashed_password", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "portfolio_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("crypto_id", sa.String(), nullable=False),
        sa.Column("symbol", sa.String(), nullable=False),
        sa.Column("amount", sa.Numeric(38, 18), nullable=False),
        sa.Column("initial_investment", sa.Numeric(38, 8), nullable=False),
        sa.Column("purchase_date", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_portfolio_items_id", "portfolio_items", ["id"])
    op.create_index("ix_portfolio_items_user_id", "portfolio_items", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_portfolio_items_user_id", table_name="portfolio_items")
    op.drop_index("ix_portfolio_items_id", table_name="portfolio_items")
    op.drop_table("portfolio_items")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")
