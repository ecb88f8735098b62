"""Create the ledger tables: bags and usage_records.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    op.create_table(
        "bags",
        sa.Column("row_id", sa.Integer(), primary_key=True, autoincrement=True),
        # Not unique at the store level; the registrar guarantees uniqueness
        sa.Column("bag_id", sa.String(128), nullable=False),
        sa.Column("batch_no", sa.String(50), nullable=False),
        sa.Column("plant_id", sa.String(50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("current_site_id", sa.String(100), nullable=False),
    )
    op.create_index("ix_bags_bag_id", "bags", ["bag_id"])

    op.create_table(
        "usage_records",
        sa.Column("row_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("usage_id", sa.String(36), nullable=False),
        sa.Column("bag_id", sa.String(128), nullable=False),
        sa.Column("worker_id", sa.String(100), nullable=False),
        sa.Column("site_id", sa.String(100), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("photo_flag", sa.String(20), nullable=False),
    )
    op.create_index("ix_usage_records_usage_id", "usage_records", ["usage_id"])
    op.create_index("ix_usage_records_bag_id", "usage_records", ["bag_id"])


def downgrade() -> None:
    op.drop_table("usage_records")
    op.drop_table("bags")
