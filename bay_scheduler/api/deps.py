import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bay_scheduler.core.config import settings
from bay_scheduler.services.notification_service import Notifier, get_notifier

cron_bearer = HTTPBearer(auto_error=False)

NotifierDep = Annotated[Notifier, Depends(get_notifier)]


def verify_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(cron_bearer),
) -> None:
    unauthorized_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid cron credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not settings.cron_secret or credentials is None:
        raise unauthorized_exc
    if not secrets.compare_digest(credentials.credentials, settings.cron_secret):
        raise unauthorized_exc


def idempotency_key_header(
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> str | None:
    if idempotency_key is None:
        return None
    normalized = idempotency_key.strip()
    if not normalized:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Idempotency-Key header must not be empty",
        )
    if len(normalized) > 128:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Idempotency-Key header is too long (max 128 characters)",
        )
    return normalized
