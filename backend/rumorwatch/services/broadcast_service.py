"""
Approval broadcast fan-out.

Reacts to a Report's ``(before, after)`` snapshot pair.  Only the first
transition into ``approved`` fans out: one ``report_approved_broadcast``
notification per registered user, excluding the submitter.

Recipients are written in batches, each batch in its own transaction, so a
failed batch never rolls back the others.  A batch that keeps failing after
its retries is split into single-recipient writes; recipients that still fail
are logged individually and returned in the result.  Delivery is
at-least-once: a retried run may duplicate notifications, which is accepted.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rumorwatch.config import get_settings
from rumorwatch.models.notification import NotificationType
from rumorwatch.models.report import ReportStatus
from rumorwatch.models.user import User
from rumorwatch.services import notification_service

logger = logging.getLogger(__name__)

APPROVED = ReportStatus.APPROVED.value


@dataclass(frozen=True)
class BroadcastPolicy:
    batch_size: int = 500
    max_retries: int = 3
    retry_delay: float = 0.5

    @classmethod
    def from_settings(cls) -> "BroadcastPolicy":
        settings = get_settings()
        return cls(
            batch_size=settings.BROADCAST_BATCH_SIZE,
            max_retries=settings.BROADCAST_MAX_RETRIES,
            retry_delay=settings.BROADCAST_RETRY_DELAY_SECONDS,
        )


@dataclass
class FanoutResult:
    report_id: str | None
    triggered: bool
    recipients: int = 0
    delivered: int = 0
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_id": self.report_id,
            "triggered": self.triggered,
            "recipients": self.recipients,
            "delivered": self.delivered,
            "failed": list(self.failed),
        }


def should_fan_out(before: dict[str, Any] | None, after: dict[str, Any] | None) -> bool:
    """True only on a transition *into* ``approved``."""
    if not before or not after:
        return False
    return before.get("status") != APPROVED and after.get("status") == APPROVED


def build_broadcast_template(after: dict[str, Any]) -> dict[str, Any]:
    rumor_url = after.get("rumor_url")
    return {
        "type": NotificationType.REPORT_APPROVED_BROADCAST.value,
        "title": "New report approved",
        "message": f"A new report about {rumor_url or 'a link'} was approved. See the details.",
        "points": 0,
        "report_id": after.get("id"),
    }


async def list_recipient_ids(db: AsyncSession, exclude: str | None = None) -> list[str]:
    """Every registered user id except *exclude*, projected to the id column."""
    query = select(User.id).order_by(User.id)
    if exclude:
        query = query.where(User.id != exclude)
    result = await db.execute(query)
    return list(result.scalars().all())


def _chunks(items: list[str], size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


async def _with_retries(
    write: Callable[[], Awaitable[Any]],
    policy: BroadcastPolicy,
    description: str,
) -> bool:
    for attempt in range(policy.max_retries + 1):
        try:
            await write()
            return True
        except Exception as e:
            if attempt < policy.max_retries:
                logger.warning(
                    "Broadcast write for %s failed (attempt %d/%d): %s",
                    description, attempt + 1, policy.max_retries + 1, e,
                )
                await asyncio.sleep(policy.retry_delay * (attempt + 1))
            else:
                logger.warning("Broadcast write for %s gave up: %s", description, e)
    return False


async def _write_batch(
    session_factory: async_sessionmaker,
    base: dict[str, Any],
    user_ids: list[str],
) -> None:
    async with session_factory() as db:
        async with db.begin():
            await notification_service.bulk_create_notifications(db, base, user_ids)


async def fan_out_approval_broadcast(
    session_factory: async_sessionmaker,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    *,
    policy: BroadcastPolicy | None = None,
) -> FanoutResult:
    """Create the broadcast notifications for a newly approved report."""
    report_id = (after or {}).get("id")
    if not should_fan_out(before, after):
        logger.debug("Report %s update is not a transition into approved; no broadcast", report_id)
        return FanoutResult(report_id=report_id, triggered=False)

    policy = policy or BroadcastPolicy.from_settings()
    base = build_broadcast_template(after)

    async with session_factory() as db:
        recipients = await list_recipient_ids(db, exclude=after.get("submitted_by"))

    result = FanoutResult(report_id=report_id, triggered=True, recipients=len(recipients))

    for batch in _chunks(recipients, policy.batch_size):
        ok = await _with_retries(
            lambda batch=batch: _write_batch(session_factory, base, batch),
            policy,
            f"report {report_id} batch of {len(batch)}",
        )
        if ok:
            result.delivered += len(batch)
            continue

        # Isolate the failing recipients
        for uid in batch:
            ok = await _with_retries(
                lambda uid=uid: _write_batch(session_factory, base, [uid]),
                policy,
                f"report {report_id} recipient {uid}",
            )
            if ok:
                result.delivered += 1
            else:
                result.failed.append(uid)
                logger.error("Broadcast for report %s not delivered to user %s", report_id, uid)

    if result.recipients and result.delivered == 0:
        logger.error(
            "Broadcast for report %s delivered nothing (%d recipients)",
            report_id, result.recipients,
        )
    else:
        logger.info(
            "Broadcast for report %s: %d/%d delivered, %d failed",
            report_id, result.delivered, result.recipients, len(result.failed),
        )
    return result
