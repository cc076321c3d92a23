from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from creatorpulse.db.base import Base


class Post(Base):
    """A logical post, fanned out to one PostPublication per target platform."""

    __tablename__ = "posts"
    __table_args__ = (
        Index("ix_posts_user_status", "user_id", "status"),
        Index("ix_posts_status_scheduled", "status", "scheduled_at"),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    media_paths: Mapped[list[str]] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(
        String(20), default="draft", server_default="draft", nullable=False
    )  # draft | scheduled | published | failed
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Classification labels, filled by the (external) content classifier
    intent: Mapped[str | None] = mapped_column(String(50), nullable=True)
    content_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Relationships
    user = relationship("User", back_populates="posts")
    publications = relationship(
        "PostPublication",
        back_populates="post",
        cascade="all, delete-orphan",
        order_by="PostPublication.id",
        lazy="selectin",
    )


class PostPublication(Base):
    """One post targeted at one platform. Lifecycle: pending -> published | failed."""

    __tablename__ = "post_publications"
    __table_args__ = (
        Index("uq_post_publications_post_platform", "post_id", "platform", unique=True),
        Index("ix_post_publications_status_platform", "status", "platform"),
    )

    post_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default="pending", nullable=False
    )
    platform_post_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    platform_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    post = relationship("Post", back_populates="publications")
    metric_events = relationship(
        "MetricEvent", back_populates="publication", cascade="all, delete-orphan"
    )
