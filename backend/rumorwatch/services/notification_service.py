"""
Notification service — creation, the per-user inbox, and live delivery.

Every notification written through this module is queued on the session's
change feed and pushed to the recipient's Socket.IO room once the
transaction commits.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import select, func, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.db.change_feed import record_notifications
from rumorwatch.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationNotFoundError(LookupError):
    pass


def notification_to_dict(n: Notification) -> dict[str, Any]:
    return {
        "id": str(n.id),
        "user_id": n.user_id,
        "type": n.type.value if n.type else None,
        "title": n.title,
        "message": n.message,
        "points": n.points or 0,
        "read": bool(n.read),
        "read_at": n.read_at.isoformat() if n.read_at else None,
        "report_id": str(n.report_id) if n.report_id else None,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

async def create_notification(
    db: AsyncSession,
    *,
    user_id: str,
    notification_type: NotificationType | str,
    title: str,
    message: str,
    points: int = 0,
    report_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    if isinstance(notification_type, str):
        notification_type = NotificationType(notification_type)

    notification = Notification(
        id=uuid.uuid4(),
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        points=points,
        read=False,
        report_id=report_id,
        created_at=datetime.utcnow(),
    )
    db.add(notification)
    await db.flush()

    payload = notification_to_dict(notification)
    record_notifications(db, [payload])
    return payload


async def bulk_create_notifications(
    db: AsyncSession,
    base: dict[str, Any],
    user_ids: Iterable[str],
) -> list[dict[str, Any]]:
    """Create one notification per recipient from a shared *base* template."""
    now = datetime.utcnow()
    rows = [
        Notification(
            id=uuid.uuid4(),
            user_id=uid,
            type=NotificationType(base["type"]),
            title=base["title"],
            message=base["message"],
            points=base.get("points", 0),
            read=False,
            report_id=uuid.UUID(base["report_id"]) if base.get("report_id") else None,
            created_at=now,
        )
        for uid in user_ids
    ]
    if not rows:
        return []
    db.add_all(rows)
    await db.flush()

    payloads = [notification_to_dict(n) for n in rows]
    record_notifications(db, payloads)
    return payloads


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------

async def list_notifications(
    db: AsyncSession,
    user_id: str,
    *,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> list[dict[str, Any]]:
    query = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .offset(offset)
    )
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(query)
    return [notification_to_dict(n) for n in result.scalars().all()]


async def count_unread(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.read.is_(False),
        )
    )
    return result.scalar() or 0


async def _get_owned(db: AsyncSession, notification_id: uuid.UUID, user_id: str) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotificationNotFoundError(f"Notification {notification_id} not found")
    return notification


async def mark_read(db: AsyncSession, notification_id: uuid.UUID, user_id: str) -> dict[str, Any]:
    notification = await _get_owned(db, notification_id, user_id)
    if not notification.read:
        notification.read = True
        notification.read_at = datetime.utcnow()
        await db.flush()
    return notification_to_dict(notification)


async def mark_all_read(db: AsyncSession, user_id: str) -> int:
    """Mark every unread notification of *user_id* read; returns how many changed."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True, read_at=datetime.utcnow())
    )
    return result.rowcount or 0


async def delete_notification(db: AsyncSession, notification_id: uuid.UUID, user_id: str) -> None:
    await _get_owned(db, notification_id, user_id)
    await db.execute(
        delete(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    logger.debug("Notification %s deleted by %s", notification_id, user_id)
