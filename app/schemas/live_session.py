# app/schemas/live_session.py
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.utils import to_naive_utc
from app.models.live_session import LiveStatus


# -------------------------------------------------------------
#  Input: creazione sessione (schedule / go live now)
# -------------------------------------------------------------
class LiveSessionCreate(BaseModel):
    title: str = Field(..., max_length=200)
    host_name: str = Field(..., max_length=128)
    description: Optional[str] = None
    # Lista di nomi oppure testo "uno per riga" come nel form admin
    participants: Union[List[str], str] = Field(default_factory=list)
    meeting_link: Optional[str] = Field(default=None, max_length=500)
    # Assente => diretta immediata; presente => deve essere nel futuro
    start_time: Optional[datetime] = None

    @field_validator("title", "host_name", mode="before")
    @classmethod
    def _strip_required(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("description", "meeting_link", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("participants", mode="before")
    @classmethod
    def _split_participants(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.splitlines()
        return [p.strip() for p in v if isinstance(p, str) and p.strip()]

    @field_validator("start_time")
    @classmethod
    def _normalize_start(cls, v):
        return to_naive_utc(v) if v is not None else None


# -------------------------------------------------------------
#  Output: snapshot sessione
# -------------------------------------------------------------
class LiveSessionOut(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    host_name: str
    participants: List[str] = Field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: LiveStatus
    viewer_count: int = 0
    meeting_link: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    # Pydantic v2
    model_config = {"from_attributes": True}


# -------------------------------------------------------------
#  Countdown
# -------------------------------------------------------------
CountdownStatus = Literal["starting", "starting-now", "starting-soon", "imminent", "scheduled"]


class CountdownBreakdown(BaseModel):
    days: int = Field(..., ge=0)
    hours: int = Field(..., ge=0, le=23)
    minutes: int = Field(..., ge=0, le=59)
    seconds: int = Field(..., ge=0, le=59)


class CountdownDisplay(BaseModel):
    status: CountdownStatus
    display: str
    breakdown: Optional[CountdownBreakdown] = None
    seconds_remaining: int = Field(..., ge=0)
    will_auto_start: bool = False


class SessionCountdownOut(BaseModel):
    session: LiveSessionOut
    countdown: CountdownDisplay


class NextCountdownOut(BaseModel):
    session: Optional[LiveSessionOut] = None
    countdown: Optional[CountdownDisplay] = None
    time_until_live: Optional[str] = None


# -------------------------------------------------------------
#  Broadcast locale + chat
# -------------------------------------------------------------
class ChatMessageIn(BaseModel):
    username: Optional[str] = Field(default=None, max_length=64)
    message: str = Field(..., min_length=1, max_length=500)

    @field_validator("message", mode="before")
    @classmethod
    def _strip_message(cls, v):
        return v.strip() if isinstance(v, str) else v


class ChatMessageOut(BaseModel):
    id: str
    username: str
    message: str
    timestamp: datetime
    is_host: bool = False


class BroadcastStateOut(BaseModel):
    is_live: bool
    session: Optional[LiveSessionOut] = None
    viewer_count: int = 0
    audio_enabled: Optional[bool] = None
    video_enabled: Optional[bool] = None
    last_error: Optional[str] = None
    chat: List[ChatMessageOut] = Field(default_factory=list)


class ToggleOut(BaseModel):
    kind: Literal["audio", "video"]
    enabled: Optional[bool] = None
    active_stream: bool
