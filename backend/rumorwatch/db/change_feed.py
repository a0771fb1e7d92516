"""
Commit-time change feed.

Services queue document changes on the session while a transaction is open;
once the transaction commits, every queued change is handed to the background
task runtime.  A rollback discards the queue, so background work never runs
for writes that did not persist.

Queued kinds:
    report_update  — ``(before, after)`` snapshots of a Report row
    notifications  — serialized notifications to push to live subscribers
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_PENDING_KEY = "change_feed.pending"


class ChangeFeedSession(Session):
    """Sync session class used under every AsyncSession of the service."""


def _pending(db: AsyncSession | Session) -> list[tuple[str, Any]]:
    sync_session = db.sync_session if isinstance(db, AsyncSession) else db
    return sync_session.info.setdefault(_PENDING_KEY, [])


def record_report_update(db: AsyncSession, before: dict[str, Any], after: dict[str, Any]) -> None:
    """Queue a Report transition for the post-commit trigger."""
    _pending(db).append(("report_update", (before, after)))


def record_notifications(db: AsyncSession, payloads: list[dict[str, Any]]) -> None:
    """Queue freshly created notifications for live delivery."""
    if payloads:
        _pending(db).append(("notifications", payloads))


def pending_changes(db: AsyncSession) -> list[tuple[str, Any]]:
    return list(_pending(db))


def _enqueue(kind: str, data: Any) -> None:
    if kind == "report_update":
        from tasks.report_tasks import on_report_updated

        before, after = data
        on_report_updated.delay(before, after)
    elif kind == "notifications":
        from tasks.notification_tasks import push_notifications

        push_notifications.delay(data)


@event.listens_for(ChangeFeedSession, "after_commit")
def _dispatch_after_commit(session: Session) -> None:
    changes = session.info.pop(_PENDING_KEY, [])
    for kind, data in changes:
        try:
            _enqueue(kind, data)
        except Exception:
            if kind == "report_update":
                logger.exception(
                    "Could not enqueue report trigger for report %s",
                    data[1].get("id"),
                )
            else:
                logger.warning("Could not enqueue %s push task", kind, exc_info=True)


@event.listens_for(ChangeFeedSession, "after_rollback")
def _discard_after_rollback(session: Session) -> None:
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.debug("Discarded %d queued change(s) after rollback", len(dropped))
