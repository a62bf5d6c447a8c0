from datetime import date, time

from pydantic import BaseModel


class SlotResponse(BaseModel):
    id: int
    start_time: time
    end_time: time
    is_available: bool
    appointment_id: int | None

    model_config = {"from_attributes": True}


class BaySlotsResponse(BaseModel):
    bay_id: int
    bay_name: str
    bay_type: str
    available: int
    booked: int
    slots: list[SlotResponse]


class DaySlotsResponse(BaseModel):
    slot_date: date
    is_business_day: bool
    total_available: int
    total_booked: int
    bays: list[BaySlotsResponse]


class SlotRegenerationResponse(BaseModel):
    bays: int
    days_processed: int
    slots_created: int
    range_from: date
    range_to: date
    slots_pruned: int
    cleanup_cutoff: date

    model_config = {"from_attributes": True}
