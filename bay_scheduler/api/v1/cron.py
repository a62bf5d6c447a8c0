from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from bay_scheduler.api.deps import verify_cron_secret
from bay_scheduler.core.clock import business_now
from bay_scheduler.db.session import get_db
from bay_scheduler.schemas.slot import SlotRegenerationResponse
from bay_scheduler.services.slot_inventory_service import regenerate_slots

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


@router.post("/regenerate-slots", response_model=SlotRegenerationResponse, status_code=status.HTTP_200_OK)
def regenerate_slot_inventory(db: Session = Depends(get_db)) -> SlotRegenerationResponse:
    summary = regenerate_slots(db=db, today=business_now().date())
    return SlotRegenerationResponse.model_validate(summary)
