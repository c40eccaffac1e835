"""User projection from Clerk lifecycle events."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.db.models.user import User
from gateway.webhooks.events import ClerkUserData

logger = structlog.get_logger(__name__)

UNKNOWN_NAME = "Unknown"


def display_name(first_name: str | None, last_name: str | None) -> str:
    """Join first and last name with a single space, skipping empty parts."""
    return " ".join(part for part in (first_name, last_name) if part) or UNKNOWN_NAME


async def get_user_by_external_id(session: AsyncSession, external_id: str) -> User | None:
    result = await session.execute(select(User).where(User.external_id == external_id))
    return result.scalar_one_or_none()


async def upsert_user(session: AsyncSession, data: ClerkUserData) -> User:
    """Create or patch the user for a Clerk ``user.created`` / ``user.updated`` payload."""
    name = display_name(data.first_name, data.last_name)
    email = data.primary_email

    user = await get_user_by_external_id(session, data.id)
    if user is not None:
        user.name = name
        user.email = email
        user.image_url = data.image_url
        await session.flush()
        logger.info("user_updated", user_id=user.id, external_id=data.id)
        return user

    user = User(external_id=data.id, name=name, email=email, image_url=data.image_url)
    session.add(user)
    await session.flush()
    logger.info("user_created", user_id=user.id, external_id=data.id)
    return user


async def delete_user(session: AsyncSession, external_id: str) -> bool:
    """Delete the user with ``external_id``. Unknown ids are a no-op."""
    user = await get_user_by_external_id(session, external_id)
    if user is None:
        logger.info("user_delete_unknown_external_id", external_id=external_id)
        return False

    await session.delete(user)
    await session.flush()
    logger.info("user_deleted", external_id=external_id)
    return True
