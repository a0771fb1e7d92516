"""
Report service — submission, lookups, and admin listing.

Submission validates input before touching the store, so a rejected
submission never leaves a partial row behind.  The submitter's user record is
created lazily here; points and ``total_reports`` are only credited by the
review workflow.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.config import get_settings
from rumorwatch.models.report import Report, ReportStatus
from rumorwatch.models.user import User

logger = logging.getLogger(__name__)


class ReportValidationError(ValueError):
    pass


def report_to_dict(report: Report) -> dict[str, Any]:
    return {
        "id": str(report.id),
        "rumor_url": report.rumor_url,
        "description": report.description,
        "image_url": report.image_url,
        "submitted_by": report.submitted_by,
        "submitted_by_email": report.submitted_by_email,
        "submitted_by_name": report.submitted_by_name,
        "status": report.status.value if report.status else None,
        "created_at": report.created_at.isoformat() if report.created_at else None,
        "reviewed_at": report.reviewed_at.isoformat() if report.reviewed_at else None,
        "reviewed_by": report.reviewed_by,
        "admin_notes": report.admin_notes,
        "points_awarded": report.points_awarded,
    }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_submission(rumor_url: str | None, description: str | None) -> tuple[str, str]:
    """Return trimmed ``(rumor_url, description)`` or raise."""
    rumor_url = (rumor_url or "").strip()
    description = (description or "").strip()
    if not rumor_url:
        raise ReportValidationError("rumor_url is required")
    if not description:
        raise ReportValidationError("description is required")
    return rumor_url, description


def validate_image(content_type: str | None, size: int) -> None:
    settings = get_settings()
    if not content_type or not content_type.startswith("image/"):
        raise ReportValidationError("the attached file must be an image")
    if size > settings.MAX_IMAGE_BYTES:
        raise ReportValidationError(
            f"image must be smaller than {settings.MAX_IMAGE_BYTES // (1024 * 1024)} MB"
        )
    if size == 0:
        raise ReportValidationError("the attached image is empty")


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

async def touch_user(
    db: AsyncSession,
    user_id: str,
    *,
    email: str | None = None,
    name: str | None = None,
) -> User:
    """Create the user row if missing, otherwise refresh profile and activity."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    now = datetime.utcnow()
    if user is None:
        user = User(
            id=user_id,
            email=email,
            name=name or email,
            total_points=0,
            total_reports=0,
            created_at=now,
            last_active=now,
        )
        db.add(user)
    else:
        if email:
            user.email = email
        if name and not user.name:
            user.name = name
        user.last_active = now
    await db.flush()
    return user


async def submit_report(
    db: AsyncSession,
    *,
    submitted_by: str,
    rumor_url: str | None,
    description: str | None,
    submitted_by_email: str | None = None,
    submitted_by_name: str | None = None,
    image_url: str | None = None,
) -> dict[str, Any]:
    rumor_url, description = validate_submission(rumor_url, description)

    report = Report(
        id=uuid.uuid4(),
        rumor_url=rumor_url,
        description=description,
        image_url=image_url,
        submitted_by=submitted_by,
        submitted_by_email=submitted_by_email,
        submitted_by_name=submitted_by_name or submitted_by_email,
        status=ReportStatus.PENDING,
        created_at=datetime.utcnow(),
    )
    db.add(report)
    await db.flush()

    await touch_user(db, submitted_by, email=submitted_by_email, name=submitted_by_name)

    logger.info("Report %s submitted by %s for %s", report.id, submitted_by, rumor_url)
    return report_to_dict(report)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_report(db: AsyncSession, report_id: uuid.UUID) -> dict[str, Any] | None:
    result = await db.execute(select(Report).where(Report.id == report_id))
    report = result.scalar_one_or_none()
    return report_to_dict(report) if report else None


async def list_user_reports(
    db: AsyncSession,
    user_id: str,
    *,
    limit: int = 100,
    offset: int = 0,
) -> list[dict[str, Any]]:
    result = await db.execute(
        select(Report)
        .where(Report.submitted_by == user_id)
        .order_by(Report.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return [report_to_dict(r) for r in result.scalars().all()]


def _build_report_filters(
    *,
    status: str | ReportStatus | None = None,
    rumor_url: str | None = None,
    submitted_by: str | None = None,
):
    conditions = []
    if status is not None:
        if isinstance(status, str):
            status = ReportStatus(status)
        conditions.append(Report.status == status)
    if rumor_url is not None:
        conditions.append(Report.rumor_url == rumor_url)
    if submitted_by is not None:
        conditions.append(Report.submitted_by == submitted_by)
    return conditions


async def list_reports(
    db: AsyncSession,
    *,
    status: str | ReportStatus | None = None,
    rumor_url: str | None = None,
    submitted_by: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """Paginated admin listing, newest first, plus the unpaginated total."""
    conditions = _build_report_filters(status=status, rumor_url=rumor_url, submitted_by=submitted_by)

    query = select(Report).order_by(Report.created_at.desc()).limit(limit).offset(offset)
    count_query = select(func.count(Report.id))
    for c in conditions:
        query = query.where(c)
        count_query = count_query.where(c)

    reports = (await db.execute(query)).scalars().all()
    total = (await db.execute(count_query)).scalar() or 0
    return [report_to_dict(r) for r in reports], total
