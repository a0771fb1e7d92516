from unittest.mock import MagicMock, patch

from sqlalchemy import select

from rumorwatch.db import change_feed
from rumorwatch.db.change_feed import pending_changes, record_notifications, record_report_update

# Captured before the autouse fixture swaps it out
_real_enqueue = change_feed._enqueue


class TestChangeFeed:
    async def test_dispatch_happens_only_after_commit(self, db, enqueued):
        await db.execute(select(1))
        record_report_update(db, {"id": "r1", "status": "pending"}, {"id": "r1", "status": "approved"})
        record_notifications(db, [{"id": "n1", "user_id": "u1"}])

        assert len(pending_changes(db)) == 2
        assert enqueued == []

        await db.commit()

        assert [kind for kind, _ in enqueued] == ["report_update", "notifications"]
        assert pending_changes(db) == []

    async def test_rollback_discards(self, db, enqueued):
        await db.execute(select(1))
        record_report_update(db, {"id": "r1", "status": "pending"}, {"id": "r1", "status": "approved"})
        await db.rollback()
        await db.commit()
        assert enqueued == []

    async def test_empty_notification_batch_is_not_queued(self, db):
        record_notifications(db, [])
        assert pending_changes(db) == []

    async def test_enqueue_failure_does_not_break_commit(self, db, monkeypatch, caplog):
        monkeypatch.setattr(change_feed, "_enqueue", MagicMock(side_effect=ConnectionError("broker down")))
        await db.execute(select(1))
        record_report_update(db, {"id": "r1", "status": "pending"}, {"id": "r1", "status": "approved"})

        await db.commit()

        assert "Could not enqueue report trigger for report r1" in caplog.text


def test_enqueue_routes_to_celery_tasks():
    with patch("tasks.report_tasks.on_report_updated.delay") as report_delay, \
            patch("tasks.notification_tasks.push_notifications.delay") as push_delay:
        _real_enqueue("report_update", ({"id": "r1"}, {"id": "r1", "status": "approved"}))
        _real_enqueue("notifications", [{"id": "n1"}])

    report_delay.assert_called_once_with({"id": "r1"}, {"id": "r1", "status": "approved"})
    push_delay.assert_called_once_with([{"id": "n1"}])
