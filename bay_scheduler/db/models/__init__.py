from bay_scheduler.db.models.appointment import (
    ACTIVE_STATUSES,
    RELEASED_STATUSES,
    TERMINAL_STATUSES,
    Appointment,
    AppointmentService,
    AppointmentStatus,
)
from bay_scheduler.db.models.bay import ServiceBay
from bay_scheduler.db.models.customer import Customer, Vehicle
from bay_scheduler.db.models.service import Service
from bay_scheduler.db.models.technician import Technician, TechnicianBayAssignment, TechnicianSchedule
from bay_scheduler.db.models.time_slot import TimeSlot

__all__ = [
    "ACTIVE_STATUSES",
    "RELEASED_STATUSES",
    "TERMINAL_STATUSES",
    "Appointment",
    "AppointmentService",
    "AppointmentStatus",
    "Customer",
    "Service",
    "ServiceBay",
    "Technician",
    "TechnicianBayAssignment",
    "TechnicianSchedule",
    "TimeSlot",
    "Vehicle",
]
