from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from creatorpulse.db.base import Base


class MetricFetchLog(Base):
    """Audit row for one polling attempt; summed per UTC day for API budgets."""

    __tablename__ = "metric_fetch_log"
    __table_args__ = (
        Index("ix_metric_fetch_log_user_platform_fetched", "user_id", "platform", "fetched_at"),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    platform_post_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    fetch_type: Mapped[str] = mapped_column(String(30), nullable=False)  # post_metrics | follower_stats
    status: Mapped[str] = mapped_column(String(10), nullable=False)  # success | failed
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    api_calls_used: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
