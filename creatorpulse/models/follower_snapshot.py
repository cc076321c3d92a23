from datetime import date

from sqlalchemy import Date, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from creatorpulse.db.base import Base


class FollowerSnapshot(Base):
    """Daily follower count. One row per (user, platform, day); re-runs overwrite."""

    __tablename__ = "follower_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "platform", "snapshot_date", name="uq_follower_snapshots_user_platform_date"
        ),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    follower_count: Mapped[int] = mapped_column(Integer, nullable=False)
    new_followers: Mapped[int | None] = mapped_column(Integer, nullable=True)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
