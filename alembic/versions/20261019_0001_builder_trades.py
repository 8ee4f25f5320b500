"""Create builder_trades and sync_state tables.

Revision ID: 001_builder_trades
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_builder_trades"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "builder_trades",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("builder_api_key", sa.Text(), nullable=True),
        sa.Column("wallet_address", sa.Text(), nullable=False),
        sa.Column("market", sa.Text(), nullable=True),
        sa.Column("asset_id", sa.Text(), nullable=True),
        sa.Column("side", sa.Text(), nullable=True),
        sa.Column("size_usdc", sa.Numeric(38, 18), nullable=False),
        sa.Column("match_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transaction_hash", sa.Text(), nullable=True),
        sa.Column(
            "raw_json",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_builder_trades_match_time", "builder_trades", ["match_time"])
    op.create_index("idx_builder_trades_wallet", "builder_trades", ["wallet_address"])
    op.create_index("idx_builder_trades_market", "builder_trades", ["market"])

    # Singleton row, always id = 1.
    op.create_table(
        "sync_state",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("last_synced_match_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_synced_cursor", sa.Text(), nullable=True),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("sync_state")
    op.drop_index("idx_builder_trades_market", table_name="builder_trades")
    op.drop_index("idx_builder_trades_wallet", table_name="builder_trades")
    op.drop_index("idx_builder_trades_match_time", table_name="builder_trades")
    op.drop_table("builder_trades")
