from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from creatorpulse.db.base import Base


class User(Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    timezone: Mapped[str] = mapped_column(String(50), default="UTC", server_default="UTC")

    # Relationships
    connections = relationship(
        "PlatformConnection", back_populates="user", cascade="all, delete-orphan"
    )
    posts = relationship("Post", back_populates="user", cascade="all, delete-orphan")
