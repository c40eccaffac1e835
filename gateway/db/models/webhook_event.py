"""WebhookEvent model for delivery deduplication."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, String

from gateway.db.base import Base


class WebhookEvent(Base):
    """Tracks processed webhook deliveries to prevent duplicate processing."""

    __tablename__ = "webhook_events"

    provider = Column(String(20), primary_key=True)  # "clerk" | "stripe"
    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(255), nullable=False)
    processed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
