"""storage table

Revision ID: 202503150900
Revises:
Create Date: 2025-03-15 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202503150900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "storage",
        sa.Column("key", sa.String(length=120), primary_key=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table("storage")
