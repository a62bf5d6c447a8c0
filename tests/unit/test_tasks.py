from datetime import UTC, date, datetime, time

from bay_scheduler.core.config import settings
from bay_scheduler.db.models import Appointment
from bay_scheduler.tasks import reminders, slots
from bay_scheduler.tasks.reminders import find_appointments_to_remind, send_upcoming_reminders
from bay_scheduler.tasks.slots import regenerate_slot_inventory

MONDAY = date(2030, 3, 4)
TUESDAY = date(2030, 3, 5)
WEDNESDAY = date(2030, 3, 6)
NOW = datetime(2030, 3, 4, 8, 0)


class RecordingNotifier:
    def __init__(self) -> None:
        self.reminded: list[int] = []

    def send_confirmation(self, appointment) -> None:
        pass

    def send_cancellation(self, appointment) -> None:
        pass

    def send_reminder(self, appointment) -> None:
        self.reminded.append(appointment.id)


def test_regenerate_slot_inventory_returns_summary(db_session, shop, monkeypatch):
    monkeypatch.setattr(settings, "slot_forward_days", 2)

    summary = regenerate_slot_inventory(db=db_session, today=MONDAY)

    assert summary.days_processed == 3
    assert summary.slots_created == 3 * 4 * 18
    assert summary.range_from == MONDAY
    assert summary.range_to == WEDNESDAY


def test_regenerate_task_serializes_dates(db_session, shop, monkeypatch):
    monkeypatch.setattr(settings, "slot_forward_days", 1)
    monkeypatch.setattr(slots, "SessionLocal", lambda: db_session)

    result = slots.regenerate_slot_inventory_task()

    assert result["bays"] == 4
    assert isinstance(result["range_from"], str)
    assert isinstance(result["cleanup_cutoff"], str)


def test_reminders_only_cover_the_lookahead_window(db_session, shop, make_appointment):
    due = make_appointment(TUESDAY, time(7, 30))
    make_appointment(MONDAY, time(7, 30))
    make_appointment(WEDNESDAY, time(9, 0))
    make_appointment(TUESDAY, time(7, 0), status="cancelled")
    already = make_appointment(TUESDAY, time(7, 0))
    already.reminder_sent_at = datetime(2030, 3, 3, 12, 0, tzinfo=UTC)
    db_session.commit()

    assert [appointment.id for appointment in find_appointments_to_remind(db_session, NOW)] == [due.id]


def test_send_upcoming_reminders_stamps_each_appointment_once(db_session, shop, make_appointment):
    due = make_appointment(MONDAY, time(13, 0))
    notifier = RecordingNotifier()

    assert send_upcoming_reminders(db_session, notifier, now=NOW) == 1
    assert send_upcoming_reminders(db_session, notifier, now=NOW) == 0
    assert notifier.reminded == [due.id]
    assert db_session.get(Appointment, due.id).reminder_sent_at is not None


def test_reminder_task_reports_count(db_session, shop, monkeypatch):
    monkeypatch.setattr(reminders, "SessionLocal", lambda: db_session)
    monkeypatch.setattr(reminders, "get_notifier", RecordingNotifier)

    assert reminders.remind_upcoming_appointments_task() == {"reminded": 0}
