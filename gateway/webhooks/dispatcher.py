"""Routes parsed webhook events to their state projection."""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.db.models.subscription import SubscriptionStatus
from gateway.services import subscriptions, users
from gateway.services.subscriptions import EXTERNAL_ID_METADATA_KEY, CustomerOwnerResolver
from gateway.webhooks.events import (
    CheckoutCompletedEvent,
    ParsedEvent,
    SubscriptionScheduleCanceledEvent,
    SubscriptionUpdatedEvent,
    UserDeletedEvent,
    UserUpsertEvent,
)

logger = structlog.get_logger(__name__)

Handler = Callable[[AsyncSession, Any], Awaitable[None]]


class EventDispatcher:
    """Fixed table of event kind -> handler. Unknown kinds are dropped."""

    def __init__(self, handlers: Mapping[str, Handler]):
        self._handlers = dict(handlers)

    @property
    def kinds(self) -> frozenset[str]:
        return frozenset(self._handlers)

    async def dispatch(self, session: AsyncSession, event: ParsedEvent) -> bool:
        """Apply ``event``. Returns False when its kind has no handler."""
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.info("webhook_event_ignored", event_type=event.kind, event_id=event.event_id)
            return False
        await handler(session, event)
        return True


# ── Clerk ───────────────────────────────────────────────────────────


async def _handle_user_upsert(session: AsyncSession, event: UserUpsertEvent) -> None:
    await users.upsert_user(session, event.data)


async def _handle_user_deleted(session: AsyncSession, event: UserDeletedEvent) -> None:
    if not event.data.id:
        logger.warning("user_deleted_missing_id", event_id=event.event_id)
        return
    await users.delete_user(session, event.data.id)


def build_clerk_dispatcher() -> EventDispatcher:
    return EventDispatcher({
        "user.created": _handle_user_upsert,
        "user.updated": _handle_user_upsert,
        "user.deleted": _handle_user_deleted,
    })


# ── Stripe ──────────────────────────────────────────────────────────


def build_stripe_dispatcher(resolver: CustomerOwnerResolver) -> EventDispatcher:
    async def handle_checkout_completed(session: AsyncSession, event: CheckoutCompletedEvent) -> None:
        checkout = event.data
        if not checkout.customer:
            logger.warning("checkout_completed_missing_customer", event_id=event.event_id)
            return
        await subscriptions.upsert_subscription(
            session,
            customer_id=checkout.customer,
            status=SubscriptionStatus.ACTIVE,
            resolver=resolver,
            subscription_id=checkout.subscription,
            plan=checkout.metadata.get("plan_slug"),
            external_id=checkout.metadata.get(EXTERNAL_ID_METADATA_KEY) or checkout.client_reference_id,
        )

    async def handle_subscription_updated(session: AsyncSession, event: SubscriptionUpdatedEvent) -> None:
        subscription = event.data
        if not subscription.customer:
            logger.warning("subscription_updated_missing_customer", event_id=event.event_id)
            return
        await subscriptions.upsert_subscription(
            session,
            customer_id=subscription.customer,
            status=subscription.status,
            resolver=resolver,
            subscription_id=subscription.id,
            plan=subscription.metadata.get("plan_slug"),
            external_id=subscription.metadata.get(EXTERNAL_ID_METADATA_KEY),
        )

    async def handle_schedule_canceled(session: AsyncSession, event: SubscriptionScheduleCanceledEvent) -> None:
        if not event.data.customer:
            logger.warning("subscription_schedule_canceled_missing_customer", event_id=event.event_id)
            return
        await subscriptions.cancel_subscription(session, event.data.customer)

    return EventDispatcher({
        "checkout.session.completed": handle_checkout_completed,
        "customer.subscription.updated": handle_subscription_updated,
        "subscription_schedule.canceled": handle_schedule_canceled,
    })
