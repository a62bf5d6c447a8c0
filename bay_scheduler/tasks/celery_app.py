from datetime import timedelta

from celery import Celery
from celery.schedules import crontab

from bay_scheduler.core.config import settings

celery_app = Celery(
    "bay_scheduler",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["bay_scheduler.tasks.slots", "bay_scheduler.tasks.reminders"],
)

# Beat schedules are evaluated in shop-local time.
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.business_timezone,
    enable_utc=True,
    beat_schedule={
        "regenerate-slot-inventory": {
            "task": "slots.regenerate",
            "schedule": crontab(hour=settings.slot_regeneration_hour, minute=0),
        },
        "remind-upcoming-appointments": {
            "task": "appointments.remind_upcoming",
            "schedule": timedelta(minutes=settings.celery_reminder_interval_minutes),
        },
    },
)
