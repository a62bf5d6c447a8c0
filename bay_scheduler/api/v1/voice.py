import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from bay_scheduler.api.deps import NotifierDep
from bay_scheduler.core.clock import business_now
from bay_scheduler.db.session import get_db
from bay_scheduler.schemas.voice import (
    VoiceAvailabilityRequest,
    VoiceAvailabilityResponse,
    VoiceBookingRequest,
    VoiceBookingResponse,
    VoiceModifyRequest,
    VoiceModifyResponse,
)
from bay_scheduler.services import voice_service
from bay_scheduler.services.voice_service import INVALID_REQUEST_MESSAGE

router = APIRouter(prefix="/voice", tags=["voice"])
logger = logging.getLogger(__name__)


def _log_invalid(endpoint: str, exc: ValidationError) -> None:
    fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
    logger.info("voice_payload_invalid endpoint=%s fields=%s", endpoint, ",".join(fields) or "-")


@router.post("/check_availability", response_model=VoiceAvailabilityResponse, status_code=status.HTTP_200_OK)
def check_availability(
    payload: dict[str, Any] | None = Body(default=None),
    db: Session = Depends(get_db),
) -> VoiceAvailabilityResponse:
    try:
        request = VoiceAvailabilityRequest.model_validate(payload or {})
    except ValidationError as exc:
        _log_invalid("check_availability", exc)
        return VoiceAvailabilityResponse(success=False, available=False, message=INVALID_REQUEST_MESSAGE)
    return voice_service.check_availability(db, request, business_now())


@router.post("/book_appointment", response_model=VoiceBookingResponse, status_code=status.HTTP_200_OK)
def book_appointment(
    notifier: NotifierDep,
    payload: dict[str, Any] | None = Body(default=None),
    db: Session = Depends(get_db),
) -> VoiceBookingResponse:
    try:
        request = VoiceBookingRequest.model_validate(payload or {})
    except ValidationError as exc:
        _log_invalid("book_appointment", exc)
        return VoiceBookingResponse(success=False, message=INVALID_REQUEST_MESSAGE)
    return voice_service.book(db, notifier, request, business_now())


@router.post("/modify_appointment", response_model=VoiceModifyResponse, status_code=status.HTTP_200_OK)
def modify_appointment(
    notifier: NotifierDep,
    payload: dict[str, Any] | None = Body(default=None),
    db: Session = Depends(get_db),
) -> VoiceModifyResponse:
    try:
        request = VoiceModifyRequest.model_validate(payload or {})
    except ValidationError as exc:
        _log_invalid("modify_appointment", exc)
        return VoiceModifyResponse(success=False, message=INVALID_REQUEST_MESSAGE)
    return voice_service.modify(db, notifier, request, business_now())
