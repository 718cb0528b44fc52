"""Baseline: listings, watches, watch_matches, watch_runs.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "listings",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="publish"),
        sa.Column("attributes", sa.JSON(), nullable=True),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_listings_category", "listings", ["category"])
    op.create_index("ix_listings_status", "listings", ["status"])
    op.create_index("ix_listings_published_at", "listings", ["published_at"])

    op.create_table(
        "watches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("guest_email", sa.String(255), nullable=True),
        sa.Column("deletion_token", sa.String(64), nullable=True, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("criteria", sa.JSON(), nullable=False),
        sa.Column("seen_listing_ids", sa.JSON(), nullable=False),
        sa.Column("created_by_ip", sa.String(45), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("last_run_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_watches_user_id", "watches", ["user_id"])
    op.create_index("ix_watches_guest_email", "watches", ["guest_email"])
    op.create_index("ix_watches_category", "watches", ["category"])
    op.create_index("ix_watches_expires_at", "watches", ["expires_at"])

    op.create_table(
        "watch_matches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("watch_id", sa.String(36), sa.ForeignKey("watches.id", ondelete="CASCADE"), nullable=False),
        sa.Column("listing_id", sa.String(64), nullable=False),
        sa.Column("match_hash", sa.String(40), nullable=False, unique=True),
        sa.Column("listing_title", sa.String(500), nullable=True),
        sa.Column("listing_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("watch_id", "listing_id", name="uq_watch_match"),
    )
    op.create_index("ix_watch_matches_watch_id", "watch_matches", ["watch_id"])
    op.create_index("ix_watch_matches_listing_id", "watch_matches", ["listing_id"])
    op.create_index("ix_watch_matches_created_at", "watch_matches", ["created_at"])

    op.create_table(
        "watch_runs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("trigger", sa.String(20), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("processed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("new_match_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("trace_json", sa.JSON(), nullable=True),
    )
    op.create_index("ix_watch_runs_started_at", "watch_runs", ["started_at"])


def downgrade() -> None:
    op.drop_table("watch_runs")
    op.drop_table("watch_matches")
    op.drop_table("watches")
    op.drop_table("listings")
