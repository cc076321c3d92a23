from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from creatorpulse.db.base import Base


class MetricSnapshot(Base):
    """One observation of a platform post at a point in time. Never updated."""

    __tablename__ = "metric_snapshots"
    __table_args__ = (
        Index("ix_metric_snapshots_platform_post_fetched", "platform_post_id", "fetched_at"),
        Index("ix_metric_snapshots_user_platform", "user_id", "platform"),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    platform_post_id: Mapped[str] = mapped_column(String(255), nullable=False)
    post_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("posts.id", ondelete="SET NULL"), nullable=True
    )

    impressions: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    unique_reach: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    reactions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    comments: Mapped[int | None] = mapped_column(Integer, nullable=True)
    shares: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quotes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bookmarks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    video_plays: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    video_watch_time_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    video_unique_viewers: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
