"""Re-export all models so Base.metadata sees them."""

from gateway.db.models.stripe_customer import StripeCustomer
from gateway.db.models.subscription import Subscription, SubscriptionStatus
from gateway.db.models.user import User
from gateway.db.models.webhook_event import WebhookEvent

__all__ = [
    "StripeCustomer",
    "Subscription",
    "SubscriptionStatus",
    "User",
    "WebhookEvent",
]
