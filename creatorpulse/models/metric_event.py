from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from creatorpulse.db.base import Base


class MetricEvent(Base):
    """Per-publication observation with derived fields fixed at write time."""

    __tablename__ = "metric_events"
    __table_args__ = (
        Index("ix_metric_events_publication_observed", "post_publication_id", "observed_at"),
        Index("ix_metric_events_user_observed", "user_id", "observed_at"),
    )

    post_publication_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("post_publications.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    platform: Mapped[str] = mapped_column(String(20), nullable=False)

    impressions: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    likes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    replies: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reposts: Mapped[int | None] = mapped_column(Integer, nullable=True)
    clicks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    profile_visits: Mapped[int | None] = mapped_column(Integer, nullable=True)
    follows_from_post: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Derived, computed once on insert
    engagement_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    hours_since_publish: Mapped[int] = mapped_column(Integer, nullable=False)

    observed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    source: Mapped[str] = mapped_column(String(20), default="api", server_default="api")

    # Relationships
    publication = relationship("PostPublication", back_populates="metric_events")
