"""initial schema: users, connections, posts, metrics, followers

Revision ID: 001
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("timezone", sa.String(50), server_default="UTC", nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "platform_connections",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("platform_user_id", sa.String(255), nullable=False),
        sa.Column("platform_username", sa.String(255), nullable=True),
        sa.Column("access_token_enc", sa.Text(), nullable=True),
        sa.Column("refresh_token_enc", sa.Text(), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("token_version", sa.Integer(), server_default="0", nullable=False),
        sa.Column("scopes", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), server_default="active", nullable=False),
        sa.Column("connected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_platform_connections_user_id", "platform_connections", ["user_id"])
    op.create_index(
        "uq_platform_connections_user_platform",
        "platform_connections",
        ["user_id", "platform"],
        unique=True,
    )

    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("media_paths", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), server_default="draft", nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("intent", sa.String(50), nullable=True),
        sa.Column("content_type", sa.String(50), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_posts_user_id", "posts", ["user_id"])
    op.create_index("ix_posts_user_status", "posts", ["user_id", "status"])
    op.create_index("ix_posts_status_scheduled", "posts", ["status", "scheduled_at"])

    op.create_table(
        "post_publications",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("post_id", sa.Integer(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("platform_post_id", sa.String(255), nullable=True),
        sa.Column("platform_url", sa.String(1024), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_post_publications_post_id", "post_publications", ["post_id"])
    op.create_index("ix_post_publications_platform_post_id", "post_publications", ["platform_post_id"])
    op.create_index(
        "uq_post_publications_post_platform", "post_publications", ["post_id", "platform"], unique=True
    )
    op.create_index("ix_post_publications_status_platform", "post_publications", ["status", "platform"])

    op.create_table(
        "metric_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("platform_post_id", sa.String(255), nullable=False),
        sa.Column("post_id", sa.Integer(), sa.ForeignKey("posts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("impressions", sa.BigInteger(), nullable=True),
        sa.Column("unique_reach", sa.BigInteger(), nullable=True),
        sa.Column("reactions", sa.Integer(), nullable=True),
        sa.Column("comments", sa.Integer(), nullable=True),
        sa.Column("shares", sa.Integer(), nullable=True),
        sa.Column("quotes", sa.Integer(), nullable=True),
        sa.Column("bookmarks", sa.Integer(), nullable=True),
        sa.Column("video_plays", sa.BigInteger(), nullable=True),
        sa.Column("video_watch_time_ms", sa.BigInteger(), nullable=True),
        sa.Column("video_unique_viewers", sa.BigInteger(), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_metric_snapshots_platform_post_fetched",
        "metric_snapshots",
        ["platform_post_id", "fetched_at"],
    )
    op.create_index("ix_metric_snapshots_user_platform", "metric_snapshots", ["user_id", "platform"])

    op.create_table(
        "metric_events",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "post_publication_id",
            sa.Integer(),
            sa.ForeignKey("post_publications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("impressions", sa.BigInteger(), nullable=True),
        sa.Column("likes", sa.Integer(), nullable=True),
        sa.Column("replies", sa.Integer(), nullable=True),
        sa.Column("reposts", sa.Integer(), nullable=True),
        sa.Column("clicks", sa.Integer(), nullable=True),
        sa.Column("profile_visits", sa.Integer(), nullable=True),
        sa.Column("follows_from_post", sa.Integer(), nullable=True),
        sa.Column("engagement_rate", sa.Float(), nullable=True),
        sa.Column("hours_since_publish", sa.Integer(), nullable=False),
        sa.Column("observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(20), server_default="api", nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_metric_events_publication_observed",
        "metric_events",
        ["post_publication_id", "observed_at"],
    )
    op.create_index("ix_metric_events_user_observed", "metric_events", ["user_id", "observed_at"])

    op.create_table(
        "metric_fetch_log",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("platform_post_id", sa.String(255), nullable=True),
        sa.Column("fetch_type", sa.String(30), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("api_calls_used", sa.Integer(), server_default="0", nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_metric_fetch_log_user_platform_fetched",
        "metric_fetch_log",
        ["user_id", "platform", "fetched_at"],
    )

    op.create_table(
        "follower_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("follower_count", sa.Integer(), nullable=False),
        sa.Column("new_followers", sa.Integer(), nullable=True),
        sa.Column("snapshot_date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "platform", "snapshot_date", name="uq_follower_snapshots_user_platform_date"
        ),
    )
    op.create_index("ix_follower_snapshots_user_id", "follower_snapshots", ["user_id"])


def downgrade() -> None:
    op.drop_table("follower_snapshots")
    op.drop_table("metric_fetch_log")
    op.drop_table("metric_events")
    op.drop_table("metric_snapshots")
    op.drop_table("post_publications")
    op.drop_table("posts")
    op.drop_table("platform_connections")
    op.drop_table("users")
