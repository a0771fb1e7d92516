"""
Points ledger queries and user-total reconciliation.

The ledger is the source of truth for awards; ``users.total_points`` and
``users.total_reports`` are running totals that should equal the ledger's
per-user sum and count.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.models.points_ledger import PointsLedgerEntry
from rumorwatch.models.user import User

logger = logging.getLogger(__name__)


def _entry_to_dict(e: PointsLedgerEntry) -> dict[str, Any]:
    return {
        "id": str(e.id),
        "user_id": e.user_id,
        "report_id": str(e.report_id),
        "rumor_url": e.rumor_url,
        "points": e.points,
        "reason": e.reason.value if e.reason else None,
        "created_at": e.created_at.isoformat() if e.created_at else None,
    }


async def list_user_entries(
    db: AsyncSession,
    user_id: str,
    *,
    limit: int = 100,
    offset: int = 0,
) -> list[dict[str, Any]]:
    result = await db.execute(
        select(PointsLedgerEntry)
        .where(PointsLedgerEntry.user_id == user_id)
        .order_by(PointsLedgerEntry.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return [_entry_to_dict(e) for e in result.scalars().all()]


async def reconcile_user_totals(db: AsyncSession, *, repair: bool = False) -> dict[str, Any]:
    """Compare every user's totals with the ledger.

    Returns the drifted users; with *repair* the totals are overwritten with
    the ledger values.
    """
    ledger = (
        select(
            PointsLedgerEntry.user_id.label("user_id"),
            func.coalesce(func.sum(PointsLedgerEntry.points), 0).label("points"),
            func.count(PointsLedgerEntry.id).label("entries"),
        )
        .group_by(PointsLedgerEntry.user_id)
        .subquery()
    )
    rows = (await db.execute(
        select(
            User,
            func.coalesce(ledger.c.points, 0),
            func.coalesce(ledger.c.entries, 0),
        )
        .outerjoin(ledger, ledger.c.user_id == User.id)
        .execution_options(populate_existing=True)
    )).all()

    drift = []
    for user, ledger_points, ledger_entries in rows:
        if (user.total_points or 0) == ledger_points and (user.total_reports or 0) == ledger_entries:
            continue
        drift.append({
            "user_id": user.id,
            "total_points": user.total_points or 0,
            "ledger_points": int(ledger_points),
            "total_reports": user.total_reports or 0,
            "ledger_entries": int(ledger_entries),
        })
        if repair:
            user.total_points = int(ledger_points)
            user.total_reports = int(ledger_entries)

    if drift:
        logger.error("Ledger drift detected for %d user(s)%s", len(drift), ", repaired" if repair else "")
        if repair:
            await db.flush()
    else:
        logger.info("Ledger reconciliation: %d users consistent", len(rows))

    # Awards to ids that never got a user row
    orphans = (await db.execute(
        select(PointsLedgerEntry.user_id)
        .where(PointsLedgerEntry.user_id.not_in(select(User.id)))
        .distinct()
    )).scalars().all()
    if orphans:
        logger.error("Ledger entries reference %d missing user(s): %s", len(orphans), list(orphans)[:10])

    return {
        "users_checked": len(rows),
        "drifted": drift,
        "orphaned_user_ids": list(orphans),
        "repaired": bool(repair and drift),
    }
