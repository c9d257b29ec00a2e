# app/schemas/event.py
from __future__ import annotations
from datetime import datetime
from typing import Optional, Literal, Dict, Type, Any
from pydantic import BaseModel, Field
from uuid import UUID

# -------------------------------------------------------------
#  Schema base per output (tabella events)
# -------------------------------------------------------------
class EventOut(BaseModel):
    id: UUID
    type: str
    description: Optional[str] = None
    session_id: Optional[UUID] = None
    payload: Optional[Dict[str, Any]] = None
    created_at: datetime

    # Pydantic v2
    model_config = {"from_attributes": True}


# -------------------------------------------------------------
#  Schemi tipizzati per validazione payload dell'Event Bus
# -------------------------------------------------------------
EventType = Literal[
    "session_scheduled",
    "session_started",
    "session_ended",
    "capture_failed",
]

class BaseEvent(BaseModel):
    type: EventType
    session_id: UUID
    title: str = Field(..., min_length=1)
    occurred_at: Optional[datetime] = None


class SessionScheduled(BaseEvent):
    type: Literal["session_scheduled"]
    start_time: datetime
    host_name: str


class SessionStarted(BaseEvent):
    type: Literal["session_started"]
    host_name: str
    reason: Literal["auto", "manual", "immediate"]
    viewer_count: int = Field(..., ge=0)


class SessionEnded(BaseEvent):
    type: Literal["session_ended"]
    duration_seconds: int = Field(..., ge=0)
    viewer_count: int = Field(..., ge=0)


class CaptureFailed(BaseEvent):
    type: Literal["capture_failed"]
    error: str


# -------------------------------------------------------------
#  Registry: mappa tipo_evento → schema corrispondente
# -------------------------------------------------------------
EVENT_SCHEMAS: Dict[str, Type[BaseModel]] = {
    "session_scheduled": SessionScheduled,
    "session_started": SessionStarted,
    "session_ended": SessionEnded,
    "capture_failed": CaptureFailed,
}


# -------------------------------------------------------------
#  Helper per validare dinamicamente un payload evento
# -------------------------------------------------------------
def validate_event_payload(payload: Dict[str, Any]) -> BaseEvent:
    """Verifica che il payload corrisponda a uno schema valido."""
    t = payload.get("type")
    schema = EVENT_SCHEMAS.get(t)
    if not schema:
        raise ValueError(f"Unsupported event type: {t}")
    return schema.model_validate(payload)
