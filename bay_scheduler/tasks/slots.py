import logging
from dataclasses import asdict
from datetime import date

from sqlalchemy.orm import Session

from bay_scheduler.core.clock import business_now
from bay_scheduler.db.session import SessionLocal
from bay_scheduler.services.slot_inventory_service import RegenerationSummary, regenerate_slots
from bay_scheduler.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def regenerate_slot_inventory(db: Session, today: date | None = None) -> RegenerationSummary:
    summary = regenerate_slots(db=db, today=today or business_now().date())
    logger.info(
        "slot_regeneration_finished created=%s pruned=%s range_to=%s",
        summary.slots_created,
        summary.slots_pruned,
        summary.range_to,
    )
    return summary


@celery_app.task(name="slots.regenerate")
def regenerate_slot_inventory_task() -> dict[str, int | str]:
    db = SessionLocal()
    try:
        summary = regenerate_slot_inventory(db=db)
        return {key: value.isoformat() if isinstance(value, date) else value for key, value in asdict(summary).items()}
    finally:
        db.close()
