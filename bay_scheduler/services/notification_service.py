import logging
from typing import Callable, Protocol

from bay_scheduler.core.metrics import NOTIFICATIONS
from bay_scheduler.db.models import Appointment

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send_confirmation(self, appointment: Appointment) -> None: ...

    def send_cancellation(self, appointment: Appointment) -> None: ...

    def send_reminder(self, appointment: Appointment) -> None: ...


def _describe(appointment: Appointment) -> str:
    when = appointment.scheduled_start.strftime("%Y-%m-%d %H:%M")
    services = ", ".join(appointment.service_names) or "service"
    return f"{services} on {when}"


class LoggingNotifier:
    """Writes the outbound message to the log instead of an SMS/email gateway."""

    def send_confirmation(self, appointment: Appointment) -> None:
        logger.info(
            "notification_sent kind=confirmation appointment_id=%s customer_id=%s text=%r",
            appointment.id,
            appointment.customer_id,
            f"Hi {appointment.customer.display_name}, you're booked for {_describe(appointment)}.",
        )

    def send_cancellation(self, appointment: Appointment) -> None:
        logger.info(
            "notification_sent kind=cancellation appointment_id=%s customer_id=%s text=%r",
            appointment.id,
            appointment.customer_id,
            f"Hi {appointment.customer.display_name}, your {_describe(appointment)} has been cancelled.",
        )

    def send_reminder(self, appointment: Appointment) -> None:
        logger.info(
            "notification_sent kind=reminder appointment_id=%s customer_id=%s text=%r",
            appointment.id,
            appointment.customer_id,
            f"Reminder: {_describe(appointment)}. Reply C to confirm.",
        )


def notify_safely(kind: str, send: Callable[[Appointment], None], appointment: Appointment) -> bool:
    """Fire-and-forget delivery: a failing gateway is logged and never reaches the caller."""
    try:
        send(appointment)
    except Exception:
        NOTIFICATIONS.labels(kind=kind, outcome="failed").inc()
        logger.exception("notification_failed kind=%s appointment_id=%s", kind, appointment.id)
        return False
    NOTIFICATIONS.labels(kind=kind, outcome="sent").inc()
    return True


_default_notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    return _default_notifier
