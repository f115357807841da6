"""store_records

Revision ID: a3c91e7d5b20
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "a3c91e7d5b20"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "store_records",
        sa.Column("key", sa.String(512), nullable=False),
        sa.Column("value", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("key"),
    )
    op.create_index("idx_store_records_updated_at", "store_records", ["updated_at"])
    op.execute(
        "CREATE INDEX idx_store_records_key_prefix ON store_records (key text_pattern_ops)"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_store_records_key_prefix")
    op.drop_index("idx_store_records_updated_at", table_name="store_records")
    op.drop_table("store_records")
