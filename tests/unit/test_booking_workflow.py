from datetime import date, datetime, time
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select

from bay_scheduler.db.models import Appointment, Customer, ServiceBay
from bay_scheduler.services import booking_service
from bay_scheduler.services.booking_service import (
    BAY_INCOMPATIBLE_DETAIL,
    EXTENSION_PAST_CLOSE_DETAIL,
    EXTENSION_UNAVAILABLE_DETAIL,
    NOT_RESCHEDULABLE_DETAIL,
    RESCHEDULE_CONFLICT_DETAIL,
    SLOT_TAKEN_DETAIL,
    WINDOW_UNAVAILABLE_DETAIL,
    add_services,
    book_appointment,
    cancel_appointment,
    get_appointment,
    reschedule_appointment,
    update_status,
)
from bay_scheduler.services.customer_service import CustomerInput, VehicleInput
from bay_scheduler.services.reservation_service import REASON_UNAVAILABLE, ReservationResult, owned_slots, reserve_slots
from bay_scheduler.services.slot_inventory_service import generate_slots

WEDNESDAY = date(2030, 3, 6)
THURSDAY = date(2030, 3, 7)
SATURDAY = date(2030, 3, 9)
NOW = datetime(2030, 3, 4, 8, 0)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, int]] = []

    def send_confirmation(self, appointment) -> None:
        self.sent.append(("confirmation", appointment.id))

    def send_cancellation(self, appointment) -> None:
        self.sent.append(("cancellation", appointment.id))

    def send_reminder(self, appointment) -> None:
        self.sent.append(("reminder", appointment.id))


class FailingNotifier:
    def send_confirmation(self, appointment) -> None:
        raise RuntimeError("sms gateway unavailable")

    def send_cancellation(self, appointment) -> None:
        raise RuntimeError("sms gateway unavailable")

    def send_reminder(self, appointment) -> None:
        raise RuntimeError("sms gateway unavailable")


@pytest.fixture(autouse=True)
def inventory(db_session, shop):
    generate_slots(db_session, WEDNESDAY, THURSDAY)


def _customer(phone: str = "555-201-0001", with_vehicle: bool = True) -> CustomerInput:
    vehicle = VehicleInput(year=2018, make="Toyota", model="Camry") if with_vehicle else None
    return CustomerInput(phone=phone, first_name="Jamie", last_name="Ortiz", vehicle=vehicle)


def _book(db, service_ids, start, day=WEDNESDAY, notifier=None, customer=None, **kwargs) -> Appointment:
    return book_appointment(
        db,
        notifier or RecordingNotifier(),
        customer=customer or _customer(),
        service_ids=service_ids,
        scheduled_date=day,
        scheduled_time=start,
        now=NOW,
        **kwargs,
    )


def _owned_times(db, appointment_id: int) -> list[tuple[date, time]]:
    return [(slot.slot_date, slot.start_time) for slot in owned_slots(db, appointment_id)]


def _appointment_count(db) -> int:
    return db.scalar(select(func.count(Appointment.id)))


def test_booking_reserves_slots_and_sends_confirmation(db_session, shop):
    notifier = RecordingNotifier()

    appointment = _book(db_session, [shop.oil_change, shop.brake_inspection], time(9, 0), notifier=notifier)

    assert appointment.status == "scheduled"
    assert appointment.bay_id == shop.bay_1
    assert appointment.technician_id == shop.senior
    assert appointment.duration_minutes == 65
    assert appointment.quoted_total == Decimal("138.99")
    assert appointment.service_names == ["Oil Change", "Brake Inspection"]
    assert appointment.created_by == "dashboard"
    assert appointment.customer.phone_normalized == "+15552010001"
    assert appointment.vehicle.description == "2018 Toyota Camry"
    assert appointment.confirmation_sent_at is not None
    assert notifier.sent == [("confirmation", appointment.id)]
    assert _owned_times(db_session, appointment.id) == [
        (WEDNESDAY, time(9, 0)),
        (WEDNESDAY, time(9, 30)),
        (WEDNESDAY, time(10, 0)),
    ]


def test_alignment_work_is_routed_to_the_alignment_rack(db_session, shop):
    appointment = _book(db_session, [shop.wheel_alignment], time(10, 0))

    assert appointment.bay_id == shop.alignment_rack
    assert appointment.technician_id == shop.senior


def test_simultaneous_bookings_fill_bays_in_order(db_session, shop):
    first = _book(db_session, [shop.oil_change], time(9, 0))
    second = _book(db_session, [shop.oil_change], time(9, 0), customer=_customer("555-201-0002"))

    assert (first.bay_id, first.technician_id) == (shop.bay_1, shop.junior)
    assert (second.bay_id, second.technician_id) == (shop.bay_2, shop.intermediate)

    with pytest.raises(HTTPException) as exc_info:
        _book(db_session, [shop.oil_change], time(9, 0), customer=_customer("555-201-0003"))
    assert exc_info.value.status_code == 409
    assert exc_info.value.detail == WINDOW_UNAVAILABLE_DETAIL


def test_lost_reservation_race_keeps_a_failed_soft_deleted_row(db_session, shop, monkeypatch):
    winner = _book(db_session, [shop.oil_change], time(9, 0))
    monkeypatch.setattr(
        booking_service,
        "find_bay_with_free_window",
        lambda db, *args, **kwargs: db.get(ServiceBay, shop.bay_1),
    )

    with pytest.raises(HTTPException) as exc_info:
        _book(db_session, [shop.oil_change], time(9, 0), customer=_customer("555-201-0002"))

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail == SLOT_TAKEN_DETAIL
    loser = db_session.scalar(select(Appointment).where(Appointment.status == "booking_failed"))
    assert loser is not None
    assert loser.deleted_at is not None
    assert owned_slots(db_session, loser.id) == []
    assert _owned_times(db_session, winner.id) == [(WEDNESDAY, time(9, 0))]
    with pytest.raises(HTTPException) as not_found:
        get_appointment(db_session, loser.id)
    assert not_found.value.status_code == 404


def test_booking_outside_business_hours_is_rejected(db_session, shop):
    with pytest.raises(HTTPException) as past_close:
        _book(db_session, [shop.engine_diagnostic], time(15, 0))
    assert past_close.value.status_code == 422
    assert past_close.value.detail["reason"] == "exceeds_closing"

    with pytest.raises(HTTPException) as closed:
        _book(db_session, [shop.oil_change], time(9, 0), day=SATURDAY)
    assert closed.value.detail["reason"] == "closed_day"
    assert _appointment_count(db_session) == 0


def test_missing_customer_details_are_reported_together(db_session, shop):
    with pytest.raises(HTTPException) as exc_info:
        _book(db_session, [shop.oil_change], time(9, 0), customer=CustomerInput(phone="555-201-0009"))

    assert exc_info.value.status_code == 422
    assert exc_info.value.detail["missing_info"] == ["name", "vehicle"]
    assert db_session.scalar(select(func.count(Customer.id))) == 0
    assert _appointment_count(db_session) == 0


def test_returning_customer_books_with_their_primary_vehicle(db_session, shop):
    first = _book(db_session, [shop.oil_change], time(9, 0))
    repeat = _book(
        db_session,
        [shop.tire_rotation],
        time(11, 0),
        customer=CustomerInput(phone="(555) 201-0001"),
    )

    assert repeat.customer_id == first.customer_id
    assert repeat.vehicle_id == first.vehicle_id


def test_idempotency_key_replays_the_original_booking(db_session, shop):
    first = _book(db_session, [shop.oil_change], time(9, 0), idempotency_key="call-7-book")
    replay = _book(db_session, [shop.oil_change], time(9, 0), idempotency_key="call-7-book")

    assert replay.id == first.id
    assert _appointment_count(db_session) == 1


def test_retry_after_a_lost_race_books_again_under_the_same_key(db_session, shop, monkeypatch):
    calls = []

    def lose_first_reservation(db, **kwargs):
        calls.append(kwargs)
        if len(calls) == 1:
            return ReservationResult(success=False, reason=REASON_UNAVAILABLE)
        return reserve_slots(db, **kwargs)

    monkeypatch.setattr(booking_service, "reserve_slots", lose_first_reservation)

    with pytest.raises(HTTPException) as exc_info:
        _book(db_session, [shop.oil_change], time(9, 0), idempotency_key="call-8-book")
    assert exc_info.value.status_code == 409
    failed = db_session.scalar(select(Appointment).where(Appointment.status == "booking_failed"))
    assert failed.idempotency_key is None

    retry = _book(db_session, [shop.oil_change], time(9, 0), idempotency_key="call-8-book")

    assert retry.id != failed.id
    assert retry.status == "scheduled"
    assert retry.idempotency_key == "call-8-book"
    assert _owned_times(db_session, retry.id) == [(WEDNESDAY, time(9, 0))]


def test_notification_failure_does_not_undo_the_booking(db_session, shop):
    appointment = _book(db_session, [shop.oil_change], time(9, 0), notifier=FailingNotifier())

    assert appointment.status == "scheduled"
    assert appointment.confirmation_sent_at is None
    assert _owned_times(db_session, appointment.id) == [(WEDNESDAY, time(9, 0))]

    cancelled = cancel_appointment(db_session, FailingNotifier(), appointment.id)
    assert cancelled.status == "cancelled"


def test_cancel_releases_slots_and_is_idempotent(db_session, shop):
    notifier = RecordingNotifier()
    appointment = _book(db_session, [shop.oil_change, shop.tire_rotation], time(9, 0), notifier=notifier)

    cancelled = cancel_appointment(db_session, notifier, appointment.id)
    again = cancel_appointment(db_session, notifier, appointment.id)

    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_at is not None
    assert again.status == "cancelled"
    assert owned_slots(db_session, appointment.id) == []
    assert notifier.sent.count(("cancellation", appointment.id)) == 1


def test_cancel_after_completion_is_rejected(db_session, shop):
    notifier = RecordingNotifier()
    appointment = _book(db_session, [shop.oil_change], time(9, 0))
    for target in ("checked_in", "in_progress", "completed"):
        update_status(db_session, notifier, appointment.id, target)

    with pytest.raises(HTTPException) as exc_info:
        cancel_appointment(db_session, notifier, appointment.id)
    assert exc_info.value.status_code == 409


def test_reschedule_moves_the_reservation(db_session, shop):
    appointment = _book(db_session, [shop.oil_change], time(9, 0))

    moved = reschedule_appointment(db_session, appointment.id, THURSDAY, time(11, 0), now=NOW)

    assert (moved.scheduled_date, moved.scheduled_time) == (THURSDAY, time(11, 0))
    assert moved.reminder_sent_at is None
    assert _owned_times(db_session, appointment.id) == [(THURSDAY, time(11, 0))]


def test_reschedule_can_overlap_its_own_block(db_session, shop):
    appointment = _book(db_session, [shop.wheel_alignment], time(9, 0))

    moved = reschedule_appointment(db_session, appointment.id, WEDNESDAY, time(9, 30), now=NOW)

    assert moved.bay_id == shop.alignment_rack
    assert _owned_times(db_session, appointment.id) == [(WEDNESDAY, time(9, 30)), (WEDNESDAY, time(10, 0))]


def test_reschedule_into_a_taken_window_keeps_the_original(db_session, shop):
    appointment = _book(db_session, [shop.wheel_alignment], time(9, 0))
    _book(db_session, [shop.wheel_alignment], time(11, 0), customer=_customer("555-201-0002"))

    with pytest.raises(HTTPException) as exc_info:
        reschedule_appointment(db_session, appointment.id, WEDNESDAY, time(11, 0), now=NOW)

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail == WINDOW_UNAVAILABLE_DETAIL
    assert get_appointment(db_session, appointment.id).scheduled_time == time(9, 0)
    assert _owned_times(db_session, appointment.id) == [(WEDNESDAY, time(9, 0)), (WEDNESDAY, time(9, 30))]


def test_failed_reschedule_restores_the_original_block(db_session, shop, monkeypatch):
    appointment = _book(db_session, [shop.oil_change], time(9, 0))
    calls = []

    def lose_first_reservation(db, **kwargs):
        calls.append(kwargs)
        if len(calls) == 1:
            return ReservationResult(success=False, reason=REASON_UNAVAILABLE)
        return reserve_slots(db, **kwargs)

    monkeypatch.setattr(booking_service, "reserve_slots", lose_first_reservation)

    with pytest.raises(HTTPException) as exc_info:
        reschedule_appointment(db_session, appointment.id, WEDNESDAY, time(11, 0), now=NOW)

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail == RESCHEDULE_CONFLICT_DETAIL
    assert calls[1]["start_time"] == time(9, 0)
    assert get_appointment(db_session, appointment.id).scheduled_time == time(9, 0)
    assert _owned_times(db_session, appointment.id) == [(WEDNESDAY, time(9, 0))]


def test_only_scheduled_or_confirmed_appointments_can_be_rescheduled(db_session, shop):
    appointment = _book(db_session, [shop.oil_change], time(9, 0))
    update_status(db_session, RecordingNotifier(), appointment.id, "checked_in")

    with pytest.raises(HTTPException) as exc_info:
        reschedule_appointment(db_session, appointment.id, WEDNESDAY, time(11, 0), now=NOW)
    assert exc_info.value.detail == NOT_RESCHEDULABLE_DETAIL


def test_add_services_extends_the_reservation(db_session, shop):
    appointment = _book(db_session, [shop.oil_change], time(9, 0))

    extended = add_services(db_session, appointment.id, [shop.tire_rotation])
    unchanged = add_services(db_session, appointment.id, [shop.tire_rotation])

    assert extended.duration_minutes == 60
    assert extended.quoted_total == Decimal("88.99")
    assert extended.service_names == ["Oil Change", "Tire Rotation"]
    assert unchanged.duration_minutes == 60
    assert _owned_times(db_session, appointment.id) == [(WEDNESDAY, time(9, 0)), (WEDNESDAY, time(9, 30))]


def test_add_services_fails_when_the_next_slot_is_taken(db_session, shop):
    appointment = _book(db_session, [shop.oil_change], time(9, 0))
    neighbour = _book(db_session, [shop.oil_change], time(9, 30), customer=_customer("555-201-0002"))
    assert neighbour.bay_id == shop.bay_1

    with pytest.raises(HTTPException) as exc_info:
        add_services(db_session, appointment.id, [shop.tire_rotation])

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail == EXTENSION_UNAVAILABLE_DETAIL
    current = get_appointment(db_session, appointment.id)
    assert current.duration_minutes == 30
    assert current.service_names == ["Oil Change"]
    assert _owned_times(db_session, appointment.id) == [(WEDNESDAY, time(9, 0))]


def test_add_services_rejects_other_bay_types_and_overruns(db_session, shop):
    morning = _book(db_session, [shop.oil_change], time(9, 0))
    late = _book(db_session, [shop.oil_change], time(15, 30), customer=_customer("555-201-0002"))

    with pytest.raises(HTTPException) as incompatible:
        add_services(db_session, morning.id, [shop.wheel_alignment])
    assert incompatible.value.detail == BAY_INCOMPATIBLE_DETAIL

    with pytest.raises(HTTPException) as overrun:
        add_services(db_session, late.id, [shop.tire_rotation])
    assert overrun.value.detail == EXTENSION_PAST_CLOSE_DETAIL


def test_status_updates_follow_the_workflow(db_session, shop):
    notifier = RecordingNotifier()
    appointment = _book(db_session, [shop.oil_change], time(9, 0), notifier=notifier)

    with pytest.raises(HTTPException) as skipped:
        update_status(db_session, notifier, appointment.id, "in_progress")
    assert skipped.value.status_code == 409

    confirmed = update_status(db_session, notifier, appointment.id, "confirmed")
    assert confirmed.status == "confirmed"
    assert notifier.sent.count(("confirmation", appointment.id)) == 2

    no_show = update_status(db_session, notifier, appointment.id, "no_show")
    assert no_show.status == "no_show"
    assert owned_slots(db_session, appointment.id) == []
