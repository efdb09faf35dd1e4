"""Helpers shared by the ride and booking lifecycle managers."""

from __future__ import annotations

import logging
from typing import Any

from src.domain.errors import ForbiddenError, NotFoundError
from src.domain.ports import IdentityService, NotificationDispatcher, UserProfile

logger = logging.getLogger(__name__)


async def require_verified_user(identity: IdentityService, user_id: str) -> UserProfile:
    user = await identity.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    if not user.is_active:
        raise ForbiddenError("Account is deactivated", "ACCOUNT_INACTIVE")
    if not user.is_verified:
        raise ForbiddenError("Account must be verified", "ACCOUNT_UNVERIFIED")
    return user


async def notify(
    notifier: NotificationDispatcher, event: str, payload: dict[str, Any]
) -> None:
    """Best effort: a failed notification never undoes the transition."""
    try:
        await notifier.publish(event, payload)
    except Exception:
        logger.warning("Notification %s failed", event, exc_info=True)
