"""Inbound webhook endpoints for Clerk (via Svix) and Stripe."""

import structlog
from fastapi import APIRouter, Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from gateway.core.exceptions import (
    WebhookConfigurationError,
    WebhookRequestError,
    WebhookSignatureError,
)
from gateway.db.base import get_session_factory
from gateway.db.models.webhook_event import WebhookEvent
from gateway.webhooks.dispatcher import EventDispatcher
from gateway.webhooks.events import ParsedEvent, parse_clerk_event, parse_stripe_event

logger = structlog.get_logger(__name__)

router = APIRouter()

# Unique-constraint races between concurrent deliveries are retried once
_MAX_ATTEMPTS = 2


async def _apply_event(provider: str, dispatcher: EventDispatcher, event: ParsedEvent) -> None:
    """Claim the delivery and apply the event in a single transaction.

    A handler failure rolls the claim back, so the provider's retry is
    processed rather than skipped as a duplicate.
    """
    factory = get_session_factory()
    for attempt in range(1, _MAX_ATTEMPTS + 1):
        async with factory() as session:
            try:
                if event.event_id:
                    claimed = await session.execute(
                        select(WebhookEvent).where(
                            WebhookEvent.provider == provider,
                            WebhookEvent.event_id == event.event_id,
                        )
                    )
                    if claimed.scalar_one_or_none() is not None:
                        logger.info(
                            "webhook_duplicate_event_ignored",
                            provider=provider,
                            event_id=event.event_id,
                            event_type=event.kind,
                        )
                        return
                    session.add(WebhookEvent(provider=provider, event_id=event.event_id, event_type=event.kind))

                await dispatcher.dispatch(session, event)
                await session.commit()
                return
            except IntegrityError:
                await session.rollback()
                if attempt == _MAX_ATTEMPTS:
                    raise
                logger.warning(
                    "webhook_concurrent_write_retry",
                    provider=provider,
                    event_id=event.event_id,
                    event_type=event.kind,
                )


@router.post("/clerk-users-webhook")
async def clerk_users_webhook(request: Request):
    """Sync users from Clerk user lifecycle events."""
    verifier = request.app.state.clerk_verifier
    if verifier is None:
        logger.error("clerk_webhook_secret_missing")
        raise WebhookConfigurationError("Clerk webhook secret not configured")

    svix_id = request.headers.get("svix-id")
    svix_timestamp = request.headers.get("svix-timestamp")
    svix_signature = request.headers.get("svix-signature")
    if not (svix_id and svix_timestamp and svix_signature):
        raise WebhookRequestError("Missing svix headers")

    body = await request.body()

    if not verifier.verify(svix_id, svix_timestamp, svix_signature, body).authentic:
        logger.warning("clerk_webhook_signature_invalid", svix_id=svix_id)
        raise WebhookSignatureError("Invalid webhook signature")

    event = parse_clerk_event(body, event_id=svix_id)
    logger.info("clerk_webhook_received", event_type=event.kind, svix_id=svix_id)

    await _apply_event("clerk", request.app.state.clerk_dispatcher, event)
    return {"success": True}


@router.post("/stripe-webhook")
async def stripe_webhook(request: Request):
    """Track subscription state from Stripe billing events."""
    verifier = request.app.state.stripe_verifier
    if verifier is None:
        logger.error("stripe_webhook_secret_missing")
        raise WebhookConfigurationError("Stripe webhook secret not configured")

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise WebhookRequestError("Missing stripe-signature header")

    body = await request.body()

    if not verifier.verify(sig_header, body).authentic:
        logger.warning("stripe_webhook_signature_invalid")
        raise WebhookSignatureError("Invalid signature")

    event = parse_stripe_event(body)
    logger.info("stripe_webhook_received", event_type=event.kind, event_id=event.event_id)

    await _apply_event("stripe", request.app.state.stripe_dispatcher, event)
    return {"received": True}
