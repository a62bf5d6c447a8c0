import os
import sys
from datetime import date, time, timedelta
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

os.environ.setdefault("CACHE_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).resolve().parents[1]))

from bay_scheduler.core.cache import analytics_cache
from bay_scheduler.core.clock import business_now
from bay_scheduler.db.base import Base
from bay_scheduler.db.models import (
    Appointment,
    AppointmentService,
    AppointmentStatus,
    Customer,
    Service,
    ServiceBay,
    Technician,
    TechnicianBayAssignment,
    TechnicianSchedule,
    Vehicle,
)
from bay_scheduler.db.session import get_db
from bay_scheduler.main import app
from bay_scheduler.services.slot_inventory_service import generate_slots

TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def seed_shop(db: Session) -> SimpleNamespace:
    """Two general bays, one alignment rack, one diagnostic bay and a small crew working Monday-Friday."""
    bay_1 = ServiceBay(name="Bay 1", bay_type="general_service")
    bay_2 = ServiceBay(name="Bay 2", bay_type="general_service")
    alignment_rack = ServiceBay(name="Alignment Rack", bay_type="alignment")
    diagnostic_bay = ServiceBay(name="Diagnostic Bay", bay_type="diagnostic")
    db.add_all([bay_1, bay_2, alignment_rack, diagnostic_bay])

    oil_change = Service(
        name="Oil Change",
        duration_minutes=30,
        required_bay_type="general_service",
        required_skill_level="junior",
        price=Decimal("49.99"),
    )
    brake_inspection = Service(
        name="Brake Inspection",
        duration_minutes=35,
        required_bay_type="general_service",
        required_skill_level="intermediate",
        price=Decimal("89.00"),
    )
    tire_rotation = Service(
        name="Tire Rotation",
        duration_minutes=30,
        required_bay_type="general_service",
        required_skill_level="junior",
        price=Decimal("39.00"),
    )
    wheel_alignment = Service(
        name="Wheel Alignment",
        duration_minutes=60,
        required_bay_type="alignment",
        required_skill_level="senior",
        price=Decimal("129.00"),
    )
    engine_diagnostic = Service(
        name="Engine Diagnostic",
        duration_minutes=90,
        required_bay_type="diagnostic",
        required_skill_level="master",
        price=Decimal("159.00"),
    )
    retired = Service(
        name="Retired Package",
        duration_minutes=30,
        required_bay_type="general_service",
        required_skill_level="junior",
        price=Decimal("10.00"),
        is_active=False,
    )
    db.add_all([oil_change, brake_inspection, tire_rotation, wheel_alignment, engine_diagnostic, retired])

    junior = Technician(first_name="Tom", last_name="Reyes", skill_level="junior")
    intermediate = Technician(first_name="Ana", last_name="Cole", skill_level="intermediate")
    senior = Technician(first_name="Sara", last_name="Lind", skill_level="senior")
    master = Technician(first_name="Mike", last_name="Dunn", skill_level="master")
    db.add_all([junior, intermediate, senior, master])
    db.flush()

    db.add_all(
        [
            TechnicianBayAssignment(technician_id=junior.id, bay_id=bay_1.id, is_primary=True),
            TechnicianBayAssignment(technician_id=intermediate.id, bay_id=bay_2.id, is_primary=True),
            TechnicianBayAssignment(technician_id=senior.id, bay_id=bay_1.id, is_primary=False),
            TechnicianBayAssignment(technician_id=senior.id, bay_id=alignment_rack.id, is_primary=True),
            TechnicianBayAssignment(technician_id=master.id, bay_id=diagnostic_bay.id, is_primary=True),
        ]
    )
    for technician in (junior, intermediate, senior, master):
        for weekday in range(5):
            db.add(
                TechnicianSchedule(
                    technician_id=technician.id,
                    day_of_week=weekday,
                    start_time=time(7, 0),
                    end_time=time(16, 0),
                )
            )
    db.commit()

    return SimpleNamespace(
        bay_1=bay_1.id,
        bay_2=bay_2.id,
        alignment_rack=alignment_rack.id,
        diagnostic_bay=diagnostic_bay.id,
        oil_change=oil_change.id,
        brake_inspection=brake_inspection.id,
        tire_rotation=tire_rotation.id,
        wheel_alignment=wheel_alignment.id,
        engine_diagnostic=engine_diagnostic.id,
        retired=retired.id,
        junior=junior.id,
        intermediate=intermediate.id,
        senior=senior.id,
        master=master.id,
    )


def upcoming_weekday(min_days_ahead: int = 7) -> date:
    day = business_now().date() + timedelta(days=min_days_ahead)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day


@pytest.fixture(autouse=True)
def reset_database() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    analytics_cache.reset()


@pytest.fixture()
def db_session() -> Session:
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def shop() -> SimpleNamespace:
    db = TestingSessionLocal()
    try:
        return seed_shop(db)
    finally:
        db.close()


@pytest.fixture()
def target_day() -> date:
    return upcoming_weekday()


@pytest.fixture()
def open_day(shop, target_day) -> date:
    db = TestingSessionLocal()
    try:
        generate_slots(db, target_day, target_day)
    finally:
        db.close()
    return target_day


@pytest.fixture()
def client() -> TestClient:
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_appointment(db_session, shop):
    """Insert an appointment row directly, without reserving any slots."""
    customer = Customer(phone="(555) 010-0000", phone_normalized="+15550100000", first_name="Pat", last_name="Nguyen")
    vehicle = Vehicle(customer=customer, year=2019, make="Honda", model="Civic", is_primary=True)
    db_session.add_all([customer, vehicle])
    db_session.commit()

    def create(
        scheduled_date: date,
        scheduled_time: time,
        duration_minutes: int = 30,
        bay_id: int | None = None,
        technician_id: int | None = None,
        service_id: int | None = None,
        status: str = AppointmentStatus.SCHEDULED.value,
    ) -> Appointment:
        service = db_session.get(Service, service_id or shop.oil_change)
        appointment = Appointment(
            customer_id=customer.id,
            vehicle_id=vehicle.id,
            bay_id=bay_id or shop.bay_1,
            technician_id=technician_id,
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            duration_minutes=duration_minutes,
            status=status,
            quoted_total=service.price,
        )
        appointment.services = [
            AppointmentService(
                service_id=service.id,
                service_name=service.name,
                quoted_price=service.price,
                duration_minutes=service.duration_minutes,
            )
        ]
        db_session.add(appointment)
        db_session.commit()
        return appointment

    return create
