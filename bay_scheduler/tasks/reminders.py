import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from bay_scheduler.core.clock import business_now
from bay_scheduler.core.config import settings
from bay_scheduler.db.models import Appointment, AppointmentStatus
from bay_scheduler.db.session import SessionLocal
from bay_scheduler.services.notification_service import Notifier, get_notifier, notify_safely
from bay_scheduler.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

REMINDABLE_STATUSES = (AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)


def find_appointments_to_remind(db: Session, now: datetime) -> list[Appointment]:
    """Live appointments starting within the lookahead window that were not reminded yet.

    ``now`` is shop-local wall-clock time.
    """
    until = now + timedelta(minutes=settings.reminder_lookahead_minutes)
    candidates = db.scalars(
        select(Appointment)
        .where(
            Appointment.status.in_(REMINDABLE_STATUSES),
            Appointment.deleted_at.is_(None),
            Appointment.reminder_sent_at.is_(None),
            Appointment.scheduled_date >= now.date(),
            Appointment.scheduled_date <= until.date(),
            or_(
                Appointment.scheduled_date > now.date(),
                and_(Appointment.scheduled_date == now.date(), Appointment.scheduled_time >= now.time()),
            ),
        )
        .order_by(Appointment.scheduled_date, Appointment.scheduled_time, Appointment.id)
    ).all()
    return [appointment for appointment in candidates if now <= appointment.scheduled_start < until]


def send_upcoming_reminders(db: Session, notifier: Notifier, now: datetime | None = None) -> int:
    current = now or business_now()
    sent = 0
    for appointment in find_appointments_to_remind(db, current):
        if notify_safely("reminder", notifier.send_reminder, appointment):
            appointment.reminder_sent_at = datetime.now(UTC)
            sent += 1
    if sent:
        db.commit()
    logger.info("reminders_sent count=%s", sent)
    return sent


@celery_app.task(name="appointments.remind_upcoming")
def remind_upcoming_appointments_task() -> dict[str, int]:
    db = SessionLocal()
    try:
        sent = send_upcoming_reminders(db=db, notifier=get_notifier())
        return {"reminded": sent}
    finally:
        db.close()
