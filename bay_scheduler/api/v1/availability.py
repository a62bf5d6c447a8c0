from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from bay_scheduler.core.clock import business_now
from bay_scheduler.core.config import settings
from bay_scheduler.db.models import ServiceBay, TimeSlot
from bay_scheduler.db.session import get_db
from bay_scheduler.schemas.availability import AvailabilityResponse, NextAvailableResponse, WindowResponse
from bay_scheduler.schemas.slot import BaySlotsResponse, DaySlotsResponse, SlotResponse
from bay_scheduler.services.availability_service import find_windows, parse_time_preference, search_end_date
from bay_scheduler.services.business_hours import is_business_day
from bay_scheduler.services.requirements import resolve_requirements

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("/search", response_model=AvailabilityResponse, status_code=status.HTTP_200_OK)
def search_availability(
    service_ids: list[int] = Query(),
    date_from: date | None = Query(default=None),
    days: int = Query(default=settings.default_search_days, ge=1, le=60),
    time_preference: str | None = Query(default=None, max_length=80),
    limit: int = Query(default=settings.dashboard_result_cap, ge=1, le=50),
    db: Session = Depends(get_db),
) -> AvailabilityResponse:
    now = business_now()
    requirements = resolve_requirements(db, service_ids)
    start = max(date_from or now.date(), now.date())
    end = search_end_date(start, days)
    windows = find_windows(
        db,
        requirements,
        start,
        end,
        now,
        time_window=parse_time_preference(time_preference),
        limit=limit,
    )
    return AvailabilityResponse(
        available=bool(windows),
        service_ids=[service.id for service in requirements.services],
        services=requirements.service_names,
        total_duration_minutes=requirements.total_duration_minutes,
        bay_type=requirements.bay_type,
        skill_level=requirements.skill_level,
        slots_needed=requirements.slots_needed,
        date_from=start,
        date_to=end,
        windows=[WindowResponse.model_validate(window) for window in windows],
    )


@router.get("/next", response_model=NextAvailableResponse, status_code=status.HTTP_200_OK)
def next_available(
    service_id: int = Query(ge=1),
    db: Session = Depends(get_db),
) -> NextAvailableResponse:
    now = business_now()
    requirements = resolve_requirements(db, [service_id])
    windows = find_windows(
        db,
        requirements,
        now.date(),
        now.date() + timedelta(days=settings.booking_max_advance_days),
        now,
        limit=1,
    )
    return NextAvailableResponse(
        service_id=service_id,
        service_name=requirements.services[0].name,
        available=bool(windows),
        window=WindowResponse.model_validate(windows[0]) if windows else None,
    )


@router.get("/day/{slot_date}", response_model=DaySlotsResponse, status_code=status.HTTP_200_OK)
def day_grid(slot_date: date, db: Session = Depends(get_db)) -> DaySlotsResponse:
    bays = db.scalars(select(ServiceBay).where(ServiceBay.is_active.is_(True)).order_by(ServiceBay.id)).all()
    slots = db.scalars(
        select(TimeSlot)
        .where(TimeSlot.slot_date == slot_date, TimeSlot.bay_id.in_([bay.id for bay in bays]))
        .order_by(TimeSlot.bay_id, TimeSlot.start_time)
    ).all()

    by_bay: dict[int, list[TimeSlot]] = {bay.id: [] for bay in bays}
    for slot in slots:
        by_bay[slot.bay_id].append(slot)

    bay_rows = []
    for bay in bays:
        bay_slots = by_bay[bay.id]
        available = sum(1 for slot in bay_slots if slot.is_available)
        bay_rows.append(
            BaySlotsResponse(
                bay_id=bay.id,
                bay_name=bay.name,
                bay_type=bay.bay_type,
                available=available,
                booked=len(bay_slots) - available,
                slots=[SlotResponse.model_validate(slot) for slot in bay_slots],
            )
        )

    return DaySlotsResponse(
        slot_date=slot_date,
        is_business_day=is_business_day(slot_date),
        total_available=sum(row.available for row in bay_rows),
        total_booked=sum(row.booked for row in bay_rows),
        bays=bay_rows,
    )
