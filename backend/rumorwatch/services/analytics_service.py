"""
Analytics service — admin dashboard totals, the leaderboard, and per-user stats.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.models.points_ledger import PointsLedgerEntry
from rumorwatch.models.report import Report, ReportStatus
from rumorwatch.models.user import User


async def _count_by_status(db: AsyncSession, *conditions) -> dict[str, int]:
    query = select(Report.status, func.count(Report.id)).group_by(Report.status)
    for c in conditions:
        query = query.where(c)
    rows = (await db.execute(query)).all()

    counts = {s.value: 0 for s in ReportStatus}
    for status, cnt in rows:
        counts[status.value if hasattr(status, "value") else str(status)] = cnt
    return counts


async def get_admin_stats(db: AsyncSession) -> dict[str, Any]:
    """Totals for the admin analytics page."""
    by_status = await _count_by_status(db)
    total_users = (await db.execute(select(func.count(User.id)))).scalar() or 0
    total_points = (await db.execute(
        select(func.coalesce(func.sum(PointsLedgerEntry.points), 0))
    )).scalar() or 0
    distinct_rumors = (await db.execute(
        select(func.count(func.distinct(Report.rumor_url)))
    )).scalar() or 0

    return {
        "total_reports": sum(by_status.values()),
        "approved_reports": by_status[ReportStatus.APPROVED.value],
        "rejected_reports": by_status[ReportStatus.REJECTED.value],
        "pending_reports": by_status[ReportStatus.PENDING.value],
        "total_users": total_users,
        "total_points": int(total_points),
        "distinct_rumors": distinct_rumors,
    }


async def get_leaderboard(db: AsyncSession, *, limit: int = 10) -> list[dict[str, Any]]:
    """Top users by points, earliest joiner first on ties, ranked from 1."""
    result = await db.execute(
        select(User)
        .order_by(User.total_points.desc(), User.created_at.asc(), User.id.asc())
        .limit(limit)
    )
    return [
        {
            "rank": i + 1,
            "user_id": u.id,
            "name": u.display_name,
            "total_points": u.total_points or 0,
            "total_reports": u.total_reports or 0,
        }
        for i, u in enumerate(result.scalars().all())
    ]


async def get_leaderboard_position(db: AsyncSession, user: User) -> int:
    """One-based leaderboard position of *user* using the leaderboard ordering."""
    ahead = await db.execute(
        select(func.count(User.id)).where(
            (User.total_points > user.total_points)
            | ((User.total_points == user.total_points) & (User.created_at < user.created_at))
            | (
                (User.total_points == user.total_points)
                & (User.created_at == user.created_at)
                & (User.id < user.id)
            )
        )
    )
    return (ahead.scalar() or 0) + 1


async def get_user_stats(db: AsyncSession, user_id: str) -> dict[str, Any] | None:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        return None

    by_status = await _count_by_status(db, Report.submitted_by == user_id)
    total_users = (await db.execute(select(func.count(User.id)))).scalar() or 0

    return {
        "user_id": user.id,
        "total_points": user.total_points or 0,
        "credited_reports": user.total_reports or 0,
        "submitted_reports": sum(by_status.values()),
        "reports_by_status": by_status,
        "rank": await get_leaderboard_position(db, user),
        "total_users": total_users,
    }


USER_SORTS = ("points", "reports", "name", "date")


async def list_users(
    db: AsyncSession,
    *,
    sort_by: str = "points",
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """User directory for admins.

    ``points`` and ``reports`` sort highest first, ``name`` alphabetically and
    ``date`` newest first.  Each row carries both the credited count and the
    number of reports the user has submitted.
    """
    if sort_by not in USER_SORTS:
        raise ValueError(f"sort_by must be one of {', '.join(USER_SORTS)}")

    submitted = (
        select(Report.submitted_by.label("user_id"), func.count(Report.id).label("submitted"))
        .group_by(Report.submitted_by)
        .subquery()
    )
    order = {
        "points": (User.total_points.desc(),),
        "reports": (User.total_reports.desc(),),
        "name": (func.lower(func.coalesce(User.name, User.email, "")).asc(),),
        "date": (User.created_at.desc(),),
    }[sort_by]

    result = await db.execute(
        select(User, func.coalesce(submitted.c.submitted, 0))
        .outerjoin(submitted, submitted.c.user_id == User.id)
        .order_by(*order, User.id.asc())
        .limit(limit)
        .offset(offset)
    )
    total = (await db.execute(select(func.count(User.id)))).scalar() or 0

    users = [
        {
            "user_id": u.id,
            "email": u.email,
            "name": u.display_name,
            "total_points": u.total_points or 0,
            "total_reports": u.total_reports or 0,
            "submitted_reports": int(n),
            "created_at": u.created_at.isoformat() if u.created_at else None,
            "last_active": u.last_active.isoformat() if u.last_active else None,
        }
        for u, n in result.all()
    ]
    return users, total
