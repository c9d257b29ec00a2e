# app/api/errors.py
from __future__ import annotations

from fastapi import HTTPException, status

from app.core.errors import (
    BroadcastActiveError,
    LiveSessionError,
    MediaCaptureError,
    SessionConflictError,
    SessionNotFoundError,
    SessionStateError,
    SessionValidationError,
    StoreUnavailableError,
)


def to_http(exc: LiveSessionError) -> HTTPException:
    """Traduce gli errori di dominio in risposte HTTP."""
    if isinstance(exc, SessionValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": exc.code, "message": exc.message},
        )
    if isinstance(exc, SessionNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Live session not found")
    if isinstance(exc, (SessionStateError, SessionConflictError, BroadcastActiveError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, MediaCaptureError):
        # 424: la diretta dipende da un dispositivo che non si è potuto aprire
        return HTTPException(
            status_code=status.HTTP_424_FAILED_DEPENDENCY,
            detail={"code": "media_capture_failed", "message": exc.user_message, "retry": True},
        )
    if isinstance(exc, StoreUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Record store unavailable")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
