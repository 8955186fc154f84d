"""Tribes, events and the storage deletion job queue

Revision ID: 0001_tribes_events_deletion_jobs
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_tribes_events_deletion_jobs"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tribes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("owner", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("city", sa.String(length=255), nullable=True),
        sa.Column("cover_url", sa.String(length=1000), nullable=True),
        sa.Column("is_private", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_tribes_owner", "tribes", ["owner"], unique=False)
    op.create_index("ix_tribes_is_deleted", "tribes", ["is_deleted"], unique=False)

    op.create_table(
        "events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tribe_id", sa.String(length=36), sa.ForeignKey("tribes.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("banner_url", sa.String(length=1000), nullable=True),
        sa.Column("starts_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("is_cancelled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_events_tribe_id", "events", ["tribe_id"], unique=False)

    op.create_table(
        "deletion_jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tribe_id", sa.String(length=36), nullable=False),
        sa.Column("event_id", sa.String(length=36), nullable=True),
        sa.Column("bucket", sa.String(length=255), nullable=False),
        sa.Column("object_path", sa.String(length=1000), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("claimed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("claimed_by", sa.String(length=100), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_deletion_jobs_id", "deletion_jobs", ["id"], unique=False)
    op.create_index("ix_deletion_jobs_tribe_id", "deletion_jobs", ["tribe_id"], unique=False)
    op.create_index("ix_deletion_jobs_status", "deletion_jobs", ["status"], unique=False)
    op.create_index("ix_deletion_jobs_status_created_at", "deletion_jobs", ["status", "created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_deletion_jobs_status_created_at", table_name="deletion_jobs")
    op.drop_index("ix_deletion_jobs_status", table_name="deletion_jobs")
    op.drop_index("ix_deletion_jobs_tribe_id", table_name="deletion_jobs")
    op.drop_index("ix_deletion_jobs_id", table_name="deletion_jobs")
    op.drop_table("deletion_jobs")
    op.drop_index("ix_events_tribe_id", table_name="events")
    op.drop_table("events")
    op.drop_index("ix_tribes_is_deleted", table_name="tribes")
    op.drop_index("ix_tribes_owner", table_name="tribes")
    op.drop_table("tribes")
