"""Tests for event routing: kind -> handler tables for Clerk and Stripe."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gateway.services.subscriptions import CustomerOwnerResolver
from gateway.webhooks.dispatcher import EventDispatcher, build_clerk_dispatcher, build_stripe_dispatcher
from gateway.webhooks.events import (
    CheckoutCompletedEvent,
    SubscriptionScheduleCanceledEvent,
    SubscriptionUpdatedEvent,
    UnrecognizedEvent,
    UserDeletedEvent,
    UserUpsertEvent,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def session():
    return MagicMock()


async def test_dispatch_calls_registered_handler(session):
    handler = AsyncMock()
    dispatcher = EventDispatcher({"user.deleted": handler})
    event = UserDeletedEvent(kind="user.deleted", data={"id": "usr_1"})

    assert await dispatcher.dispatch(session, event) is True
    handler.assert_awaited_once_with(session, event)


async def test_dispatch_drops_unknown_kind(session):
    handler = AsyncMock()
    dispatcher = EventDispatcher({"user.deleted": handler})

    assert await dispatcher.dispatch(session, UnrecognizedEvent(kind="email.created")) is False
    handler.assert_not_awaited()


async def test_handler_errors_propagate(session):
    dispatcher = EventDispatcher({"user.deleted": AsyncMock(side_effect=RuntimeError("boom"))})

    with pytest.raises(RuntimeError, match="boom"):
        await dispatcher.dispatch(session, UserDeletedEvent(kind="user.deleted", data={"id": "usr_1"}))


def test_provider_tables_are_fixed():
    assert build_clerk_dispatcher().kinds == {"user.created", "user.updated", "user.deleted"}
    assert build_stripe_dispatcher(CustomerOwnerResolver()).kinds == {
        "checkout.session.completed",
        "customer.subscription.updated",
        "subscription_schedule.canceled",
    }


# ============================================================================
# Clerk handlers
# ============================================================================


@pytest.mark.parametrize("kind", ["user.created", "user.updated"])
async def test_user_events_upsert(session, kind):
    event = UserUpsertEvent(kind=kind, data={"id": "usr_1", "first_name": "Ada"})

    with patch("gateway.webhooks.dispatcher.users.upsert_user", new_callable=AsyncMock) as upsert:
        await build_clerk_dispatcher().dispatch(session, event)

    upsert.assert_awaited_once_with(session, event.data)


async def test_user_deleted_deletes_by_external_id(session):
    with patch("gateway.webhooks.dispatcher.users.delete_user", new_callable=AsyncMock) as delete:
        await build_clerk_dispatcher().dispatch(session, UserDeletedEvent(kind="user.deleted", data={"id": "usr_1"}))

    delete.assert_awaited_once_with(session, "usr_1")


async def test_user_deleted_without_id_is_noop(session):
    with patch("gateway.webhooks.dispatcher.users.delete_user", new_callable=AsyncMock) as delete:
        await build_clerk_dispatcher().dispatch(session, UserDeletedEvent(kind="user.deleted", data={}))

    delete.assert_not_awaited()


# ============================================================================
# Stripe handlers
# ============================================================================


async def test_checkout_completed_upserts_active(session):
    resolver = CustomerOwnerResolver()
    event = CheckoutCompletedEvent(
        kind="checkout.session.completed",
        data={
            "customer": "cus_1",
            "subscription": "sub_1",
            "metadata": {"clerk_user_id": "usr_1", "plan_slug": "pro"},
        },
    )

    with patch("gateway.webhooks.dispatcher.subscriptions.upsert_subscription", new_callable=AsyncMock) as upsert:
        await build_stripe_dispatcher(resolver).dispatch(session, event)

    upsert.assert_awaited_once_with(
        session,
        customer_id="cus_1",
        status="active",
        resolver=resolver,
        subscription_id="sub_1",
        plan="pro",
        external_id="usr_1",
    )


async def test_checkout_completed_falls_back_to_client_reference_id(session):
    event = CheckoutCompletedEvent(
        kind="checkout.session.completed",
        data={"customer": {"id": "cus_1"}, "client_reference_id": "usr_9"},
    )

    with patch("gateway.webhooks.dispatcher.subscriptions.upsert_subscription", new_callable=AsyncMock) as upsert:
        await build_stripe_dispatcher(CustomerOwnerResolver()).dispatch(session, event)

    assert upsert.await_args.kwargs["customer_id"] == "cus_1"
    assert upsert.await_args.kwargs["external_id"] == "usr_9"


async def test_checkout_completed_without_customer_is_noop(session):
    event = CheckoutCompletedEvent(kind="checkout.session.completed", data={"customer": None})

    with patch("gateway.webhooks.dispatcher.subscriptions.upsert_subscription", new_callable=AsyncMock) as upsert:
        await build_stripe_dispatcher(CustomerOwnerResolver()).dispatch(session, event)

    upsert.assert_not_awaited()


async def test_subscription_updated_passes_status_verbatim(session):
    event = SubscriptionUpdatedEvent(
        kind="customer.subscription.updated",
        data={"customer": "cus_1", "id": "sub_1", "status": "trialing"},
    )

    with patch("gateway.webhooks.dispatcher.subscriptions.upsert_subscription", new_callable=AsyncMock) as upsert:
        await build_stripe_dispatcher(CustomerOwnerResolver()).dispatch(session, event)

    kwargs = upsert.await_args.kwargs
    assert kwargs["status"] == "trialing"
    assert kwargs["subscription_id"] == "sub_1"
    assert kwargs["plan"] is None
    assert kwargs["external_id"] is None


async def test_schedule_canceled_cancels(session):
    event = SubscriptionScheduleCanceledEvent(kind="subscription_schedule.canceled", data={"customer": "cus_1"})

    with patch("gateway.webhooks.dispatcher.subscriptions.cancel_subscription", new_callable=AsyncMock) as cancel:
        await build_stripe_dispatcher(CustomerOwnerResolver()).dispatch(session, event)

    cancel.assert_awaited_once_with(session, "cus_1")
