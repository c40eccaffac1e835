"""Subscription model: Stripe billing state, one row per customer."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from gateway.db.base import Base


class SubscriptionStatus:
    """Statuses the gateway sets itself. Stripe-reported statuses are stored verbatim."""

    ACTIVE = "active"
    CANCELED = "canceled"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Owner; nulled if the Clerk user is deleted, billing state is kept
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    user = relationship("User", back_populates="subscriptions")

    # Stripe
    stripe_customer_id = Column(String(255), unique=True, nullable=False, index=True)
    stripe_subscription_id = Column(String(255), nullable=True)
    status = Column(String(50), nullable=False)
    plan = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
