from celery import Celery
from celery.schedules import crontab

from repairbid.config import settings

app = Celery(
    "repairbid",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "repairbid.tasks.bidding_tasks.*": {"queue": "bidding"},
        "repairbid.tasks.payout_tasks.*": {"queue": "payouts"},
    },
    beat_schedule={
        "close-expired-requests": {
            "task": "repairbid.tasks.bidding_tasks.close_expired_requests",
            "schedule": crontab(minute=0),  # every hour
        },
        "generate-monthly-payouts": {
            "task": "repairbid.tasks.payout_tasks.generate_previous_month_payouts",
            "schedule": crontab(day_of_month=1, hour=2, minute=0),
        },
    },
)

app.autodiscover_tasks(
    [
        "repairbid.tasks.bidding_tasks",
        "repairbid.tasks.payout_tasks",
    ]
)
