from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "edge_cache_entries",
        sa.Column("cache_key", sa.Text(), primary_key=True),
        sa.Column("status", sa.Integer(), nullable=False),
        sa.Column("headers_json", sa.Text(), nullable=False),
        sa.Column("body", sa.LargeBinary(), nullable=False),
        sa.Column("stored_at", sa.Float(), nullable=False),
        sa.Column("expires_at", sa.Float(), nullable=False),
    )
    op.create_index("ix_edge_cache_entries_expires_at", "edge_cache_entries", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_edge_cache_entries_expires_at", table_name="edge_cache_entries")
    op.drop_table("edge_cache_entries")
