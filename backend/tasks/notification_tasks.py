"""Celery tasks delivering committed notifications to live subscribers."""
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


async def push_all(payloads: list[dict]) -> int:
    from rumorwatch.api.websocket.handler import notify_user

    pushed = 0
    for payload in payloads:
        user_id = payload.get("user_id")
        if not user_id:
            continue
        try:
            await notify_user(user_id, payload)
            pushed += 1
        except Exception as e:
            # The stored notification is still in the user's inbox
            logger.warning("Live push of notification %s to %s failed: %s", payload.get("id"), user_id, e)
    return pushed


@celery_app.task(name="tasks.notification_tasks.push_notifications")
def push_notifications(payloads: list[dict]):
    """Emit each notification to its recipient's Socket.IO room."""
    pushed = _run_async(push_all(payloads))
    logger.debug("Pushed %d/%d notifications", pushed, len(payloads))
    return pushed
