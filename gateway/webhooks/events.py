"""Typed webhook events.

A verified body is decoded into exactly one of a closed set of event models.
Kinds outside that set become ``UnrecognizedEvent`` so the dispatcher can
drop them without probing the payload.
"""

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, ValidationError

from gateway.core.exceptions import EventPayloadError


def _object_id(value: Any) -> Any:
    """Stripe references are either an id string or an expanded object with ``id``."""
    if isinstance(value, dict):
        return value.get("id")
    return value


StripeRef = Annotated[str | None, BeforeValidator(_object_id)]
Metadata = Annotated[dict[str, str], BeforeValidator(lambda value: value or {})]


# ── Clerk payloads ──────────────────────────────────────────────────


class ClerkEmailAddress(BaseModel):
    id: str | None = None
    email_address: str


class ClerkUserData(BaseModel):
    id: str
    first_name: str | None = None
    last_name: str | None = None
    email_addresses: list[ClerkEmailAddress] = []
    primary_email_address_id: str | None = None
    image_url: str | None = None

    @property
    def primary_email(self) -> str | None:
        for address in self.email_addresses:
            if self.primary_email_address_id and address.id == self.primary_email_address_id:
                return address.email_address
        if self.email_addresses:
            return self.email_addresses[0].email_address
        return None


class ClerkDeletedUserData(BaseModel):
    id: str | None = None
    deleted: bool = True


# ── Stripe payloads ─────────────────────────────────────────────────


class CheckoutSessionObject(BaseModel):
    id: str | None = None
    customer: StripeRef = None
    subscription: StripeRef = None
    client_reference_id: str | None = None
    metadata: Metadata = {}


class SubscriptionObject(BaseModel):
    id: str | None = None
    customer: StripeRef = None
    status: str
    metadata: Metadata = {}


class SubscriptionScheduleObject(BaseModel):
    id: str | None = None
    customer: StripeRef = None


# ── Events ──────────────────────────────────────────────────────────


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str | None = None


class UserUpsertEvent(_Event):
    kind: Literal["user.created", "user.updated"]
    data: ClerkUserData


class UserDeletedEvent(_Event):
    kind: Literal["user.deleted"]
    data: ClerkDeletedUserData


class CheckoutCompletedEvent(_Event):
    kind: Literal["checkout.session.completed"]
    data: CheckoutSessionObject


class SubscriptionUpdatedEvent(_Event):
    kind: Literal["customer.subscription.updated"]
    data: SubscriptionObject


class SubscriptionScheduleCanceledEvent(_Event):
    kind: Literal["subscription_schedule.canceled"]
    data: SubscriptionScheduleObject


class UnrecognizedEvent(_Event):
    kind: str


ParsedEvent = Union[
    UserUpsertEvent,
    UserDeletedEvent,
    CheckoutCompletedEvent,
    SubscriptionUpdatedEvent,
    SubscriptionScheduleCanceledEvent,
    UnrecognizedEvent,
]

CLERK_EVENT_TYPES: dict[str, type[_Event]] = {
    "user.created": UserUpsertEvent,
    "user.updated": UserUpsertEvent,
    "user.deleted": UserDeletedEvent,
}

STRIPE_EVENT_TYPES: dict[str, type[_Event]] = {
    "checkout.session.completed": CheckoutCompletedEvent,
    "customer.subscription.updated": SubscriptionUpdatedEvent,
    "subscription_schedule.canceled": SubscriptionScheduleCanceledEvent,
}


def _load_envelope(body: bytes) -> tuple[dict, str]:
    try:
        document = json.loads(body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise EventPayloadError() from exc
    if not isinstance(document, dict):
        raise EventPayloadError()
    kind = document.get("type")
    if not isinstance(kind, str) or not kind:
        raise EventPayloadError("Invalid webhook payload: missing event type")
    return document, kind


def _build(model: type[_Event], kind: str, event_id: str | None, data: Any) -> ParsedEvent:
    try:
        return model.model_validate({"kind": kind, "event_id": event_id, "data": data})
    except ValidationError as exc:
        raise EventPayloadError(f"Invalid webhook payload for {kind}") from exc


def parse_clerk_event(body: bytes, event_id: str | None = None) -> ParsedEvent:
    """Decode a verified Clerk body (``{"type": ..., "data": {...}}``)."""
    document, kind = _load_envelope(body)
    model = CLERK_EVENT_TYPES.get(kind)
    if model is None:
        return UnrecognizedEvent(kind=kind, event_id=event_id)

    data = document.get("data")
    if not isinstance(data, dict):
        raise EventPayloadError(f"Invalid webhook payload for {kind}")
    return _build(model, kind, event_id, data)


def parse_stripe_event(body: bytes) -> ParsedEvent:
    """Decode a verified Stripe body (``{"id": ..., "type": ..., "data": {"object": {...}}}``)."""
    document, kind = _load_envelope(body)
    event_id = document.get("id") if isinstance(document.get("id"), str) else None
    model = STRIPE_EVENT_TYPES.get(kind)
    if model is None:
        return UnrecognizedEvent(kind=kind, event_id=event_id)

    data = document.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise EventPayloadError(f"Invalid webhook payload for {kind}")
    return _build(model, kind, event_id, obj)
