"""Durable price cache: price_cache_entries

Revision ID: 001_price_cache_entries
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_price_cache_entries"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "price_cache_entries",
        sa.Column("key", sa.String(), nullable=False, comment="make_cache_key() output"),
        sa.Column("payload", sa.Text(), nullable=False, comment="JSON-serialized cached value"),
        sa.Column(
            "stored_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("ttl_seconds", sa.FLOAT(), nullable=False),
        sa.PrimaryKeyConstraint("key", name="pk_price_cache_entries"),
    )
    op.create_index("ix_price_cache_entries_stored_at", "price_cache_entries", ["stored_at"])


def downgrade() -> None:
    op.drop_index("ix_price_cache_entries_stored_at", table_name="price_cache_entries")
    op.drop_table("price_cache_entries")
