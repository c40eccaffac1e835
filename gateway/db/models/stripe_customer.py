"""StripeCustomer model: correlates a Stripe customer with a Clerk user."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, String

from gateway.db.base import Base


class StripeCustomer(Base):
    """Maps a Stripe customer id to the external id of the Clerk user that owns it.

    Keyed on the external id rather than a users row so the link survives a
    user being deleted and recreated.
    """

    __tablename__ = "stripe_customers"

    stripe_customer_id = Column(String(255), primary_key=True)
    external_id = Column(String(255), nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
