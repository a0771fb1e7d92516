"""Periodic points-ledger reconciliation."""
import logging

from tasks.celery_app import celery_app
from tasks.report_tasks import _make_session, _run_async

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.ledger_tasks.reconcile_points")
def reconcile_points(repair: bool = False):
    """Compare user totals with the points ledger; report (and optionally repair) drift."""
    from rumorwatch.services.ledger_service import reconcile_user_totals

    async def _run():
        eng, Session = _make_session()
        try:
            async with Session() as db:
                async with db.begin():
                    return await reconcile_user_totals(db, repair=repair)
        finally:
            await eng.dispose()

    result = _run_async(_run())
    logger.info(
        "Ledger reconciliation: %d users checked, %d drifted",
        result["users_checked"], len(result["drifted"]),
    )
    return result
