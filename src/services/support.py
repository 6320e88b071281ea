"""Authorization guards and helpers shared by the service classes."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from src.domain.entities import Principal
from src.domain.enums import UserType
from src.domain.errors import Forbidden

logger = logging.getLogger(__name__)


def require_role(principal: Principal, role: UserType, message: str) -> None:
    if principal.user_type != role:
        raise Forbidden(message)


def require_self_or_admin(principal: Principal, user_id: int, message: str) -> None:
    if not principal.is_admin and principal.user_id != user_id:
        raise Forbidden(message)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite drops the offset on read)."""
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


async def notify(notifier, recipient: Optional[str], template: str, data: dict[str, Any]) -> list[str]:
    """Send a notification; failures are logged and returned as warnings."""
    if notifier is None or not recipient:
        return []
    try:
        await notifier.send(recipient, template, data)
    except Exception as exc:
        logger.warning("Could not send %s notification to %s: %s", template, recipient, exc)
        return [f"{template} notification failed: {exc}"]
    return []
