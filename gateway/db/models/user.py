"""User model: identity-provider users mirrored from Clerk."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from gateway.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(255), unique=True, nullable=False, index=True)

    # Profile fields (from Clerk user payloads)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    image_url = Column(String(500), nullable=True)

    subscriptions = relationship("Subscription", back_populates="user")

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
