"""Create global_channels table

Revision ID: 5c2e8d41a7b3
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "5c2e8d41a7b3"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """One row per global chat room; payload is the serialized record."""
    op.create_table(
        "global_channels",
        sa.Column("id", sa.String(16), primary_key=True),
        sa.Column("payload", postgresql.JSONB, nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )


def downgrade() -> None:
    op.drop_table("global_channels")
