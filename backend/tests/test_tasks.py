from unittest.mock import AsyncMock, patch

import pytest
from celery.exceptions import Retry
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from conftest import make_user
from rumorwatch.config import get_settings
from rumorwatch.db.postgres import Base
from rumorwatch.models.notification import Notification
from tasks import ledger_tasks, notification_tasks, report_tasks


@pytest.fixture
def task_db(tmp_path, monkeypatch):
    """Point the worker-side engine at a scratch SQLite file with the schema in place."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'worker.db'}"
    monkeypatch.setattr(get_settings(), "DATABASE_URL", url)

    async def _create():
        eng = create_async_engine(url)
        async with eng.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await eng.dispose()

    report_tasks._run_async(_create())
    return url


def _seed(*user_ids):
    async def _run():
        eng, Session = report_tasks._make_session()
        try:
            async with Session() as db:
                for uid in user_ids:
                    await make_user(db, uid)
                await db.commit()
        finally:
            await eng.dispose()

    report_tasks._run_async(_run())


def _broadcast_recipients():
    async def _run():
        eng, Session = report_tasks._make_session()
        try:
            async with Session() as db:
                result = await db.execute(select(Notification.user_id).order_by(Notification.user_id))
                return list(result.scalars().all())
        finally:
            await eng.dispose()

    return report_tasks._run_async(_run())


SNAPSHOT = {
    "id": "00000000-0000-0000-0000-000000000001",
    "submitted_by": "submitter",
    "rumor_url": "https://example.com/rumor",
}


class TestReportTrigger:
    def test_approval_fans_out_and_pushes_status(self, task_db):
        _seed("submitter", "u1", "u2")
        push = AsyncMock()
        with patch("rumorwatch.api.websocket.handler.broadcast_report_status", push):
            result = report_tasks.on_report_updated(
                {**SNAPSHOT, "status": "pending"}, {**SNAPSHOT, "status": "approved"},
            )

        assert result["triggered"] is True
        assert result["delivered"] == 2
        assert _broadcast_recipients() == ["u1", "u2"]
        push.assert_awaited_once()

    def test_rejection_does_not_fan_out(self, task_db):
        _seed("submitter", "u1")
        with patch("rumorwatch.api.websocket.handler.broadcast_report_status", AsyncMock()):
            result = report_tasks.on_report_updated(
                {**SNAPSHOT, "status": "pending"}, {**SNAPSHOT, "status": "rejected"},
            )

        assert result["triggered"] is False
        assert _broadcast_recipients() == []

    def test_retries_only_when_run_cannot_start(self):
        with patch.object(report_tasks, "_run_async", side_effect=ConnectionError("db unreachable")), \
                patch.object(report_tasks.on_report_updated, "retry", side_effect=Retry()) as retry:
            with pytest.raises(Retry):
                report_tasks.on_report_updated(
                    {**SNAPSHOT, "status": "pending"}, {**SNAPSHOT, "status": "approved"},
                )
        retry.assert_called_once()


class TestNotificationPush:
    async def test_push_all_emits_per_recipient(self):
        notify = AsyncMock(side_effect=[None, RuntimeError("redis down"), None])
        payloads = [
            {"id": "n1", "user_id": "u1"},
            {"id": "n2", "user_id": "u2"},
            {"id": "n3"},
            {"id": "n4", "user_id": "u4"},
        ]
        with patch("rumorwatch.api.websocket.handler.notify_user", notify):
            pushed = await notification_tasks.push_all(payloads)

        assert pushed == 2
        assert [c.args[0] for c in notify.await_args_list] == ["u1", "u2", "u4"]


class TestLedgerTask:
    def test_reconcile_points(self, task_db):
        _seed("u1", "u2")
        result = ledger_tasks.reconcile_points()
        assert result["users_checked"] == 2
        assert result["drifted"] == []
