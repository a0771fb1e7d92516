"""Celery tasks reacting to committed report changes."""
import asyncio
import logging

from tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _make_session():
    """Create a fresh async engine + session factory for this task.

    Each _run_async() call uses a new event loop and asyncpg connections are
    bound to the loop they were created on, so the API's global engine cannot
    be reused here.
    """
    from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
    from rumorwatch.config import get_settings
    from rumorwatch.db.change_feed import ChangeFeedSession

    settings = get_settings()
    eng = create_async_engine(settings.DATABASE_URL, pool_size=2, max_overflow=0)
    factory = async_sessionmaker(
        eng,
        class_=AsyncSession,
        sync_session_class=ChangeFeedSession,
        expire_on_commit=False,
    )
    return eng, factory


async def run_report_trigger(session_factory, before: dict, after: dict) -> dict:
    """Trigger body: live status push for admins, then the approval fan-out."""
    from rumorwatch.services.broadcast_service import fan_out_approval_broadcast

    try:
        from rumorwatch.api.websocket.handler import broadcast_report_status

        await broadcast_report_status(after)
    except Exception as e:
        logger.warning("Report status push failed for %s: %s", (after or {}).get("id"), e)

    result = await fan_out_approval_broadcast(session_factory, before, after)
    return result.to_dict()


@celery_app.task(name="tasks.report_tasks.on_report_updated", bind=True, max_retries=3,
                 default_retry_delay=30)
def on_report_updated(self, before: dict, after: dict):
    """
    Trigger for every committed report update.

    Only a transition into ``approved`` fans out.  The task retries only when
    the run could not start (e.g. recipient enumeration failed); partial
    per-recipient failures are logged by the fan-out and never retried here.
    """
    async def _run():
        eng, Session = _make_session()
        try:
            return await run_report_trigger(Session, before, after)
        finally:
            await eng.dispose()

    try:
        return _run_async(_run())
    except Exception as exc:
        logger.error(
            "Report trigger for %s could not run (attempt %d): %s",
            (after or {}).get("id"), self.request.retries + 1, exc,
        )
        raise self.retry(exc=exc)
