from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from creatorpulse.db.base import Base


class PlatformConnection(Base):
    """OAuth connection from one user to one external platform.

    Tokens are stored Fernet-encrypted. ``token_version`` is bumped on every
    token write and used as the compare-and-swap guard for refreshes.
    """

    __tablename__ = "platform_connections"
    __table_args__ = (
        Index("uq_platform_connections_user_platform", "user_id", "platform", unique=True),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    platform_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    platform_username: Mapped[str | None] = mapped_column(String(255), nullable=True)

    access_token_enc: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token_enc: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    token_version: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    scopes: Mapped[list[str]] = mapped_column(JSON, default=list)

    status: Mapped[str] = mapped_column(
        String(20), default="active", server_default="active", nullable=False
    )  # active | expired | revoked
    connected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", back_populates="connections")

    def is_expired(self, now: datetime | None = None) -> bool:
        """A token without an expiry never expires."""
        if self.token_expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.token_expires_at
