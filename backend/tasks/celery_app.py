from celery import Celery

from rumorwatch.config import get_settings

settings = get_settings()

celery_app = Celery(
    "rumorwatch",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "tasks.report_tasks",
        "tasks.notification_tasks",
        "tasks.ledger_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_routes={
        "tasks.report_tasks.*": {"queue": "reports.updated"},
        "tasks.notification_tasks.*": {"queue": "notifications.push"},
        "tasks.ledger_tasks.*": {"queue": "ledger"},              # LOW priority
    },
    beat_schedule={
        "reconcile-points": {
            "task": "tasks.ledger_tasks.reconcile_points",
            "schedule": 3600.0,  # Every hour
        },
    },
)
