import uuid

import pytest
from sqlalchemy import select, func

from conftest import make_report, make_user
from rumorwatch.models.notification import Notification, NotificationType
from rumorwatch.models.points_ledger import PointsLedgerEntry
from rumorwatch.models.report import Report, ReportStatus
from rumorwatch.models.user import User
from rumorwatch.services import review_service, scoring_service
from rumorwatch.services.review_service import (
    InvalidDecisionError,
    ReportAlreadyReviewedError,
    ReportNotFoundError,
    ReviewDecision,
)
from rumorwatch.services.scoring_service import ScoringConfig

URL = "https://example.com/rumor"


async def _totals(session_factory, user_id):
    async with session_factory() as s:
        row = (await s.execute(
            select(User.total_points, User.total_reports).where(User.id == user_id)
        )).one_or_none()
    return tuple(row) if row else None


async def _count(session_factory, model, *conditions):
    async with session_factory() as s:
        query = select(func.count()).select_from(model)
        for c in conditions:
            query = query.where(c)
        return (await s.execute(query)).scalar()


class TestRanking:
    async def test_rank_follows_submission_order(self, db):
        reports = [await make_report(db, f"user-{i}", minutes=i) for i in range(4)]
        ranks = [await review_service.compute_rank(db, r) for r in reports]
        assert ranks == [0, 1, 2, 3]

    async def test_rank_ignores_other_urls(self, db):
        await make_report(db, "a", rumor_url="https://other.example/x", minutes=0)
        mine = await make_report(db, "b", minutes=5)
        assert await review_service.compute_rank(db, mine) == 0

    async def test_rank_is_stable_on_rerun(self, db):
        reports = [await make_report(db, f"user-{i}", minutes=i) for i in range(5)]
        first = [await review_service.compute_rank(db, r) for r in reports]
        second = [await review_service.compute_rank(db, r) for r in reports]
        assert first == second

    async def test_equal_timestamps_break_ties_by_id(self, db):
        low = await make_report(db, "a", minutes=0, report_id=uuid.UUID(int=1))
        high = await make_report(db, "b", minutes=0, report_id=uuid.UUID(int=2))
        assert await review_service.compute_rank(db, low) == 0
        assert await review_service.compute_rank(db, high) == 1
        assert await review_service.ranked_report_ids(db, URL) == [str(low.id), str(high.id)]

    async def test_all_digit_ids_read_back_as_uuids(self, db, session_factory):
        report = await make_report(db, "a", report_id=uuid.UUID(int=7))
        await db.commit()

        async with session_factory() as s:
            stored = (await s.execute(select(Report).where(Report.id == uuid.UUID(int=7)))).scalar_one()
            assert stored.id == report.id
            assert await review_service.ranked_report_ids(s, URL) == [str(uuid.UUID(int=7))]

    async def test_missing_url_ranks_first(self, db):
        report = await make_report(db, "a", rumor_url=None)
        assert await review_service.compute_rank(db, report) == 0


class TestPreview:
    async def test_preview_matches_approval_and_writes_nothing(self, db):
        for i in range(2):
            await make_report(db, f"early-{i}", minutes=i)
        target = await make_report(db, "me", minutes=10)
        await db.commit()

        preview = await review_service.preview_review(db, target.id)
        assert preview.rank == 2
        assert preview.position == 3
        assert preview.group_size == 3
        assert preview.points == 30
        assert preview.status == "pending"
        assert (await db.execute(select(func.count(PointsLedgerEntry.id)))).scalar() == 0

        result = await review_service.review_report(db, target.id, "approved", reviewer="admin")
        assert result.points_awarded == preview.points
        assert result.rank == preview.rank

    async def test_preview_uses_given_config(self, db):
        target = await make_report(db, "me")
        preview = await review_service.preview_review(
            db, target.id, scoring_config=ScoringConfig(tiers=(5,), default_points=1),
        )
        assert preview.points == 5
        assert preview.to_dict()["tiers"] == [5]

    async def test_preview_unknown_report(self, db):
        with pytest.raises(ReportNotFoundError):
            await review_service.preview_review(db, uuid.uuid4())


class TestApprove:
    async def test_approve_credits_ledger_user_and_notifies(self, db, session_factory, enqueued):
        await make_user(db, "submitter", total_points=5, total_reports=1)
        await make_report(db, "other", minutes=0)
        report = await make_report(db, "submitter", minutes=1)
        await db.commit()
        enqueued.clear()

        result = await review_service.review_report(
            db, report.id, ReviewDecision.APPROVED, reviewer="admin@example.com", notes="  solid  ",
        )
        await db.commit()

        assert result.rank == 1
        assert result.points_awarded == 40
        assert result.submitter_total_points == 45
        assert result.report["status"] == "approved"
        assert result.report["points_awarded"] == 40
        assert result.report["reviewed_by"] == "admin@example.com"
        assert result.report["admin_notes"] == "solid"

        assert await _totals(session_factory, "submitter") == (45, 2)

        async with session_factory() as s:
            entry = (await s.execute(
                select(PointsLedgerEntry).where(PointsLedgerEntry.report_id == report.id)
            )).scalar_one()
            note = (await s.execute(
                select(Notification).where(Notification.user_id == "submitter")
            )).scalar_one()
        assert entry.points == 40
        assert entry.user_id == "submitter"
        assert entry.rumor_url == URL
        assert note.type == NotificationType.REPORT_APPROVED
        assert note.points == 40

        kinds = [kind for kind, _ in enqueued]
        assert "report_update" in kinds
        before, after = next(data for kind, data in enqueued if kind == "report_update")
        assert before["status"] == "pending"
        assert after["status"] == "approved"

    async def test_approve_creates_missing_user(self, db, session_factory):
        report = await make_report(db, "newcomer")
        await db.commit()

        await review_service.review_report(db, report.id, "approved", reviewer="admin")
        await db.commit()

        assert await _totals(session_factory, "newcomer") == (50, 1)
        async with session_factory() as s:
            user = (await s.execute(select(User).where(User.id == "newcomer"))).scalar_one()
        assert user.email == "newcomer@example.com"

    async def test_uses_saved_current_config(self, db):
        await scoring_service.save_current_config(db, [7, 3], 1)
        first = await make_report(db, "a", minutes=0)
        second = await make_report(db, "b", minutes=1)
        third = await make_report(db, "c", minutes=2)

        assert (await review_service.review_report(db, third.id, "approved", reviewer="x")).points_awarded == 1
        assert (await review_service.review_report(db, first.id, "approved", reviewer="x")).points_awarded == 7
        assert (await review_service.review_report(db, second.id, "approved", reviewer="x")).points_awarded == 3

    async def test_rank_counts_reviewed_reports_too(self, db):
        first = await make_report(db, "a", minutes=0)
        second = await make_report(db, "b", minutes=1)
        await review_service.review_report(db, first.id, "rejected", reviewer="x")

        result = await review_service.review_report(db, second.id, "approved", reviewer="x")
        assert result.rank == 1
        assert result.points_awarded == 40


class TestReject:
    async def test_reject_records_decision_without_credit(self, db, session_factory):
        await make_user(db, "submitter")
        report = await make_report(db, "submitter")
        await db.commit()

        result = await review_service.review_report(
            db, report.id, "rejected", reviewer="admin", notes="duplicate",
        )
        await db.commit()

        assert result.points_awarded is None
        assert result.rank is None
        assert result.report["status"] == "rejected"
        assert result.report["points_awarded"] is None
        assert result.notification["type"] == "report_rejected"
        assert result.notification["points"] == 0
        assert await _totals(session_factory, "submitter") == (0, 0)
        assert await _count(session_factory, PointsLedgerEntry) == 0


class TestPreconditions:
    async def test_unknown_report(self, db):
        with pytest.raises(ReportNotFoundError):
            await review_service.review_report(db, uuid.uuid4(), "approved", reviewer="x")

    async def test_invalid_decision(self, db):
        report = await make_report(db, "a")
        with pytest.raises(InvalidDecisionError):
            await review_service.review_report(db, report.id, "maybe", reviewer="x")

    @pytest.mark.parametrize("first,second", [
        ("approved", "approved"),
        ("approved", "rejected"),
        ("rejected", "approved"),
        ("rejected", "rejected"),
    ])
    async def test_terminal_reports_cannot_be_reviewed_again(self, db, session_factory, first, second):
        await make_user(db, "submitter")
        report = await make_report(db, "submitter")
        report_id = report.id
        await db.commit()
        await review_service.review_report(db, report_id, first, reviewer="x")
        await db.commit()
        totals = await _totals(session_factory, "submitter")

        with pytest.raises(ReportAlreadyReviewedError):
            await review_service.review_report(db, report_id, second, reviewer="y")
        await db.rollback()

        assert await _totals(session_factory, "submitter") == totals
        assert await _count(session_factory, PointsLedgerEntry) == (1 if first == "approved" else 0)
        assert await _count(session_factory, Notification, Notification.user_id == "submitter") == 1
        async with session_factory() as s:
            stored = (await s.execute(select(Report).where(Report.id == report_id))).scalar_one()
        assert stored.status == ReportStatus(first)
        assert stored.reviewed_by == "x"


class TestConcurrentReview:
    async def test_stale_reviewer_loses_the_claim(self, session_factory):
        async with session_factory() as setup:
            await make_user(setup, "submitter")
            report = await make_report(setup, "submitter")
            await setup.commit()

        async with session_factory() as slow, session_factory() as fast:
            # The slow reviewer has already loaded the report as pending
            await slow.get(Report, report.id)

            await review_service.review_report(fast, report.id, "approved", reviewer="fast")
            await fast.commit()

            with pytest.raises(ReportAlreadyReviewedError):
                await review_service.review_report(slow, report.id, "approved", reviewer="slow")
            await slow.rollback()

        assert await _totals(session_factory, "submitter") == (50, 1)
        assert await _count(session_factory, PointsLedgerEntry, PointsLedgerEntry.report_id == report.id) == 1

    async def test_duplicate_ledger_entry_rolls_back_everything(self, db, session_factory):
        await make_user(db, "submitter")
        report = await make_report(db, "submitter")
        report_id = report.id
        # A credit that landed without the status change, e.g. from a racing writer
        db.add(PointsLedgerEntry(id=uuid.uuid4(), user_id="submitter", report_id=report_id, points=50))
        await db.commit()

        with pytest.raises(ReportAlreadyReviewedError):
            await review_service.review_report(db, report_id, "approved", reviewer="x")
        await db.rollback()

        assert await _totals(session_factory, "submitter") == (0, 0)
        assert await _count(session_factory, PointsLedgerEntry) == 1
        assert await _count(session_factory, Notification) == 0
        async with session_factory() as s:
            stored = (await s.execute(select(Report).where(Report.id == report_id))).scalar_one()
        assert stored.status == ReportStatus.PENDING
        assert stored.points_awarded is None

    async def test_user_row_created_by_a_racing_approval(self, session_factory, monkeypatch):
        async with session_factory() as setup:
            await make_user(setup, "submitter", total_points=20, total_reports=1)
            report = await make_report(setup, "submitter")
            await setup.commit()

        real_increment = review_service._increment_user
        calls = []

        async def racing_increment(db, user_id, points, now):
            calls.append(user_id)
            if len(calls) == 1:
                # Row did not exist yet when this approval checked
                return False
            return await real_increment(db, user_id, points, now)

        monkeypatch.setattr(review_service, "_increment_user", racing_increment)

        async with session_factory() as db:
            result = await review_service.review_report(db, report.id, "approved", reviewer="x")
            await db.commit()

        assert len(calls) == 2
        assert result.submitter_total_points == 70
        assert await _totals(session_factory, "submitter") == (70, 2)
        assert await _count(session_factory, User) == 1

    async def test_rollback_discards_queued_trigger(self, db, enqueued):
        report = await make_report(db, "submitter")
        await db.commit()
        enqueued.clear()

        await review_service.review_report(db, report.id, "approved", reviewer="x")
        await db.rollback()

        assert enqueued == []


class TestScenario:
    async def test_tiered_awards_by_submission_order(self, db, session_factory):
        """Seven reports on one URL; approvals out of order still pay by rank."""
        names = ["A", "B", "C", "D", "E", "X", "F"]
        reports = {}
        for i, name in enumerate(names):
            await make_user(db, f"user-{name}")
            reports[name] = await make_report(db, f"user-{name}", minutes=i)
        await db.commit()

        expectations = [("C", 2, 30), ("A", 0, 50), ("E", 4, 15), ("F", 6, 10)]
        for name, rank, points in expectations:
            result = await review_service.review_report(db, reports[name].id, "approved", reviewer="admin")
            await db.commit()
            assert (result.rank, result.points_awarded) == (rank, points), name
            assert await _totals(session_factory, f"user-{name}") == (points, 1)

        for untouched in ("B", "D", "X"):
            assert await _totals(session_factory, f"user-{untouched}") == (0, 0)
