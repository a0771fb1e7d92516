"""
Report review workflow — approve/reject with rank-based points.

Approval, in one database transaction:

1. lock the report row and require ``pending``
2. rank the report among all reports on the same rumor URL
   (ascending ``created_at``, ties broken by report id)
3. map the rank to points with the current ``ScoringConfig``
4. claim the report with a conditional ``pending -> approved`` update
5. credit the submitter (create the user row if absent)
6. append the ledger entry (unique per report)
7. notify the submitter

If any step fails the caller's transaction rolls back and the report stays
``pending``.  The conditional update and the ledger's unique constraint each
stop a second reviewer from crediting the same report, even on backends
without row locks.

The approval broadcast to other users is *not* done here: the committed
``(before, after)`` snapshot is queued on the change feed and the
background trigger performs the fan-out.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select, func, update, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.db.change_feed import record_report_update
from rumorwatch.models.notification import NotificationType
from rumorwatch.models.points_ledger import PointsLedgerEntry, LedgerReason
from rumorwatch.models.report import Report, ReportStatus
from rumorwatch.models.user import User
from rumorwatch.services import notification_service
from rumorwatch.services.report_service import report_to_dict
from rumorwatch.services.scoring_service import ScoringConfig, load_current_config, points_for_rank

logger = logging.getLogger(__name__)


class ReviewDecision(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewError(Exception):
    """Base class for review precondition failures."""


class ReportNotFoundError(ReviewError, LookupError):
    pass


class ReportAlreadyReviewedError(ReviewError):
    pass


class InvalidDecisionError(ReviewError, ValueError):
    pass


@dataclass
class RankPreview:
    report_id: str
    status: str
    rank: int  # zero-based
    group_size: int
    points: int
    points_awarded: int | None
    tiers: list[int]
    default_points: int

    @property
    def position(self) -> int:
        """One-based position, as shown to reviewers."""
        return self.rank + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_id": self.report_id,
            "status": self.status,
            "rank": self.rank,
            "position": self.position,
            "group_size": self.group_size,
            "points": self.points,
            "points_awarded": self.points_awarded,
            "tiers": self.tiers,
            "default_points": self.default_points,
        }


@dataclass
class ReviewResult:
    report: dict[str, Any]
    decision: ReviewDecision
    points_awarded: int | None
    rank: int | None
    notification: dict[str, Any]
    submitter_total_points: int | None = None


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def _ordered_before(report: Report):
    """Reports that sort ahead of *report* on (created_at, id)."""
    return or_(
        Report.created_at < report.created_at,
        and_(Report.created_at == report.created_at, Report.id < report.id),
    )


async def compute_rank(db: AsyncSession, report: Report) -> int:
    """Zero-based position of *report* among reports sharing its rumor URL.

    Reports without a rumor URL have no group; they rank 0 and therefore
    receive the first tier.
    """
    if not report.rumor_url:
        return 0
    result = await db.execute(
        select(func.count(Report.id)).where(
            Report.rumor_url == report.rumor_url,
            Report.id != report.id,
            _ordered_before(report),
        )
    )
    return result.scalar() or 0


async def ranked_report_ids(db: AsyncSession, rumor_url: str) -> list[str]:
    """All report ids for *rumor_url* in ranking order."""
    result = await db.execute(
        select(Report.id)
        .where(Report.rumor_url == rumor_url)
        .order_by(Report.created_at.asc(), Report.id.asc())
    )
    return [str(rid) for rid in result.scalars().all()]


async def _group_size(db: AsyncSession, report: Report) -> int:
    if not report.rumor_url:
        return 1
    result = await db.execute(
        select(func.count(Report.id)).where(Report.rumor_url == report.rumor_url)
    )
    return result.scalar() or 1


async def _load_report(db: AsyncSession, report_id: uuid.UUID, *, for_update: bool = False) -> Report:
    query = select(Report).where(Report.id == report_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    report = result.scalar_one_or_none()
    if report is None:
        raise ReportNotFoundError(f"Report {report_id} not found")
    return report


async def preview_review(
    db: AsyncSession,
    report_id: uuid.UUID,
    *,
    scoring_config: ScoringConfig | None = None,
) -> RankPreview:
    """Would-be rank and points for an approval, without writing anything."""
    report = await _load_report(db, report_id)
    config = scoring_config or await load_current_config(db)
    rank = await compute_rank(db, report)
    return RankPreview(
        report_id=str(report.id),
        status=report.status.value,
        rank=rank,
        group_size=await _group_size(db, report),
        points=points_for_rank(rank, config),
        points_awarded=report.points_awarded,
        tiers=list(config.tiers),
        default_points=config.default_points,
    )


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------

def _coerce_decision(decision: ReviewDecision | str) -> ReviewDecision:
    try:
        return ReviewDecision(decision)
    except ValueError:
        raise InvalidDecisionError(f"decision must be 'approved' or 'rejected', got {decision!r}")


async def _claim_pending(db: AsyncSession, report_id: uuid.UUID, values: dict[str, Any]) -> bool:
    result = await db.execute(
        update(Report)
        .where(Report.id == report_id, Report.status == ReportStatus.PENDING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _increment_user(db: AsyncSession, user_id: str, points: int, now: datetime) -> bool:
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            total_points=User.total_points + points,
            total_reports=User.total_reports + 1,
            last_active=now,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _credit_user(db: AsyncSession, report: Report, points: int, now: datetime) -> int:
    """Add *points* and one credited report to the submitter; returns the new total."""
    user_id = report.submitted_by
    if not await _increment_user(db, user_id, points, now):
        try:
            async with db.begin_nested():
                db.add(User(
                    id=user_id,
                    email=report.submitted_by_email,
                    name=report.submitted_by_name,
                    total_points=points,
                    total_reports=1,
                    created_at=now,
                    last_active=now,
                ))
                await db.flush()
            return points
        except IntegrityError:
            # Another approval created the row first
            logger.info("User %s created concurrently; crediting the existing row", user_id)
            if not await _increment_user(db, user_id, points, now):
                raise
            await db.refresh(report)

    total = await db.execute(select(User.total_points).where(User.id == user_id))
    return total.scalar_one()


async def _append_ledger(db: AsyncSession, report: Report, points: int, now: datetime) -> None:
    report_id = report.id
    db.add(PointsLedgerEntry(
        id=uuid.uuid4(),
        user_id=report.submitted_by,
        report_id=report_id,
        rumor_url=report.rumor_url or None,
        points=points,
        reason=LedgerReason.REPORT_APPROVED,
        created_at=now,
    ))
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ReportAlreadyReviewedError(
            f"Report {report_id} already has a points ledger entry"
        ) from exc


def _decision_message(decision: ReviewDecision, rumor_url: str | None, points: int) -> tuple[str, str]:
    subject = rumor_url or "your link"
    if decision == ReviewDecision.APPROVED:
        return (
            "Report approved",
            f'Your report about "{subject}" was approved and earned {points} points. '
            "Thank you for helping fight rumors!",
        )
    return (
        "Report rejected",
        f'Your report about "{subject}" was rejected. Please review the information you provided.',
    )


async def review_report(
    db: AsyncSession,
    report_id: uuid.UUID,
    decision: ReviewDecision | str,
    *,
    reviewer: str,
    notes: str | None = None,
    scoring_config: ScoringConfig | None = None,
) -> ReviewResult:
    """Apply a reviewer's decision to a pending report.

    Raises ``ReportNotFoundError`` for unknown ids and
    ``ReportAlreadyReviewedError`` when the report is no longer pending.
    Nothing is committed here; the caller owns the transaction.
    """
    decision = _coerce_decision(decision)

    report = await _load_report(db, report_id, for_update=True)
    if report.status != ReportStatus.PENDING:
        raise ReportAlreadyReviewedError(
            f"Report {report_id} was already {report.status.value}"
        )

    before = report_to_dict(report)
    now = datetime.utcnow()
    values: dict[str, Any] = {
        "reviewed_at": now,
        "reviewed_by": reviewer,
        "admin_notes": (notes or "").strip() or None,
    }

    rank = None
    points = 0
    if decision == ReviewDecision.APPROVED:
        config = scoring_config or await load_current_config(db)
        rank = await compute_rank(db, report)
        points = points_for_rank(rank, config)
        values.update(status=ReportStatus.APPROVED, points_awarded=points)
    else:
        values.update(status=ReportStatus.REJECTED, points_awarded=None)

    if not await _claim_pending(db, report.id, values):
        raise ReportAlreadyReviewedError(f"Report {report_id} was reviewed concurrently")

    submitter_total = None
    if decision == ReviewDecision.APPROVED:
        submitter_total = await _credit_user(db, report, points, now)
        await _append_ledger(db, report, points, now)

    title, message = _decision_message(decision, report.rumor_url, points)
    notification = await notification_service.create_notification(
        db,
        user_id=report.submitted_by,
        notification_type=(
            NotificationType.REPORT_APPROVED
            if decision == ReviewDecision.APPROVED
            else NotificationType.REPORT_REJECTED
        ),
        title=title,
        message=message,
        points=points,
        report_id=report.id,
    )

    await db.refresh(report)
    after = report_to_dict(report)
    record_report_update(db, before, after)

    logger.info(
        "Report %s %s by %s (rank=%s, points=%s)",
        report.id, decision.value, reviewer, rank, points if rank is not None else "-",
    )
    return ReviewResult(
        report=after,
        decision=decision,
        points_awarded=points if decision == ReviewDecision.APPROVED else None,
        rank=rank,
        notification=notification,
        submitter_total_points=submitter_total,
    )
