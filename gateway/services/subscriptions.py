"""Subscription projection from Stripe billing events.

Rows are keyed on ``stripe_customer_id`` and are never deleted: checkout
completion sets ``active``, subscription updates store Stripe's status
verbatim, schedule cancellation sets ``canceled``. The last event applied
wins, so an update arriving after a cancellation reopens the row.
"""

import stripe
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.core.exceptions import SubscriptionOwnerNotFoundError
from gateway.db.models.stripe_customer import StripeCustomer
from gateway.db.models.subscription import Subscription, SubscriptionStatus
from gateway.db.models.user import User
from gateway.services.users import get_user_by_external_id

logger = structlog.get_logger(__name__)

# Metadata key set on Stripe customers and checkout sessions at checkout creation
EXTERNAL_ID_METADATA_KEY = "clerk_user_id"


async def get_subscription_by_customer(session: AsyncSession, customer_id: str) -> Subscription | None:
    result = await session.execute(select(Subscription).where(Subscription.stripe_customer_id == customer_id))
    return result.scalar_one_or_none()


async def list_subscriptions_for_user(session: AsyncSession, user_id: int) -> list[Subscription]:
    result = await session.execute(
        select(Subscription).where(Subscription.user_id == user_id).order_by(Subscription.id)
    )
    return list(result.scalars().all())


async def link_customer(session: AsyncSession, customer_id: str, external_id: str) -> StripeCustomer:
    """Record which Clerk user owns a Stripe customer (latest link wins)."""
    link = await session.get(StripeCustomer, customer_id)
    if link is None:
        link = StripeCustomer(stripe_customer_id=customer_id, external_id=external_id)
        session.add(link)
    elif link.external_id != external_id:
        logger.warning(
            "stripe_customer_relinked",
            customer_id=customer_id,
            previous_external_id=link.external_id,
            external_id=external_id,
        )
        link.external_id = external_id
    await session.flush()
    return link


class CustomerOwnerResolver:
    """Finds the user that owns a Stripe customer.

    Sources, in order: the external id carried by the event itself, the stored
    ``stripe_customers`` link, then the customer's metadata fetched from Stripe
    (only when an API key is configured).
    """

    def __init__(self, stripe_api_key: str | None = None):
        self.stripe_api_key = stripe_api_key or None

    async def _external_id_from_stripe(self, customer_id: str) -> str | None:
        if not self.stripe_api_key:
            return None
        try:
            customer = await stripe.Customer.retrieve_async(customer_id, api_key=self.stripe_api_key)
        except stripe.StripeError as exc:
            logger.warning(
                "stripe_customer_lookup_failed",
                customer_id=customer_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None
        metadata = getattr(customer, "metadata", None) or {}
        return metadata.get(EXTERNAL_ID_METADATA_KEY)

    async def resolve(self, session: AsyncSession, customer_id: str, external_id: str | None = None) -> User:
        user: User | None = None
        source = None

        if external_id:
            user, source = await get_user_by_external_id(session, external_id), "event"

        if user is None:
            link = await session.get(StripeCustomer, customer_id)
            if link is not None:
                user, source = await get_user_by_external_id(session, link.external_id), "link"

        if user is None:
            stripe_external_id = await self._external_id_from_stripe(customer_id)
            if stripe_external_id:
                user, source = await get_user_by_external_id(session, stripe_external_id), "stripe"

        if user is None:
            logger.error(
                "subscription_owner_not_found",
                customer_id=customer_id,
                external_id=external_id,
            )
            raise SubscriptionOwnerNotFoundError(customer_id)

        if source != "link":
            await link_customer(session, customer_id, user.external_id)
        logger.info("subscription_owner_resolved", customer_id=customer_id, source=source, user_id=user.id)
        return user


async def upsert_subscription(
    session: AsyncSession,
    *,
    customer_id: str,
    status: str,
    resolver: CustomerOwnerResolver,
    subscription_id: str | None = None,
    plan: str | None = None,
    external_id: str | None = None,
) -> Subscription:
    """Patch the subscription for ``customer_id`` or create it for the resolved owner.

    ``subscription_id`` and ``plan`` only overwrite stored values when given.
    A row orphaned by its owner's deletion is re-linked once an owner resolves.
    """
    subscription = await get_subscription_by_customer(session, customer_id)
    if subscription is not None:
        if subscription.user_id is None:
            try:
                owner = await resolver.resolve(session, customer_id, external_id)
            except SubscriptionOwnerNotFoundError:
                logger.warning("subscription_still_orphaned", customer_id=customer_id)
            else:
                subscription.user_id = owner.id
                logger.info("subscription_relinked", customer_id=customer_id, user_id=owner.id)

        previous_status = subscription.status
        subscription.status = status
        if subscription_id is not None:
            subscription.stripe_subscription_id = subscription_id
        if plan is not None:
            subscription.plan = plan
        await session.flush()
        logger.info(
            "subscription_status_updated",
            customer_id=customer_id,
            previous_status=previous_status,
            status=status,
        )
        return subscription

    owner = await resolver.resolve(session, customer_id, external_id)
    subscription = Subscription(
        user_id=owner.id,
        stripe_customer_id=customer_id,
        stripe_subscription_id=subscription_id,
        status=status,
        plan=plan,
    )
    session.add(subscription)
    await session.flush()
    logger.info("subscription_created", customer_id=customer_id, user_id=owner.id, status=status)
    return subscription


async def cancel_subscription(session: AsyncSession, customer_id: str) -> Subscription | None:
    """Mark the subscription for ``customer_id`` canceled. Unknown customers are a no-op."""
    subscription = await get_subscription_by_customer(session, customer_id)
    if subscription is None:
        logger.info("subscription_cancel_unknown_customer", customer_id=customer_id)
        return None

    subscription.status = SubscriptionStatus.CANCELED
    await session.flush()
    logger.info("subscription_canceled", customer_id=customer_id)
    return subscription
