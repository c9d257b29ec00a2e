# app/api/routes.py
from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_live_manager
from app.api.errors import to_http
from app.core.errors import LiveSessionError
from app.core.live_manager import LiveSessionManager
from app.schemas.live_session import (
    BroadcastStateOut,
    ChatMessageIn,
    ChatMessageOut,
    NextCountdownOut,
    SessionCountdownOut,
)

router = APIRouter(prefix="/api/live", tags=["live"])


# =====================================================================
# SESSIONI PROGRAMMATE + COUNTDOWN
# =====================================================================
@router.get(
    "/sessions/upcoming",
    response_model=List[SessionCountdownOut],
    summary="Dirette programmate (ordine di inizio) con countdown",
)
async def list_upcoming_sessions(manager: LiveSessionManager = Depends(get_live_manager)):
    try:
        sessions = await manager.list_upcoming()
    except LiveSessionError as e:
        raise to_http(e)

    return [
        {"session": s, "countdown": manager.compute_countdown(s)}
        for s in sessions
    ]


@router.get(
    "/sessions/next",
    response_model=NextCountdownOut,
    summary="Countdown della prossima diretta",
)
async def next_session_countdown(manager: LiveSessionManager = Depends(get_live_manager)):
    try:
        session, countdown, remaining = await manager.next_countdown()
    except LiveSessionError as e:
        raise to_http(e)

    return {"session": session, "countdown": countdown, "time_until_live": remaining}


@router.get(
    "/sessions/{session_id}",
    response_model=SessionCountdownOut,
    summary="Stato di una diretta (polling)",
)
async def get_live_session(session_id: UUID, manager: LiveSessionManager = Depends(get_live_manager)):
    try:
        session = await manager.get_session(session_id)
    except LiveSessionError as e:
        raise to_http(e)

    return {"session": session, "countdown": manager.compute_countdown(session)}


# =====================================================================
# DIRETTA CORRENTE (broadcast di questo server)
# =====================================================================
@router.get("/current", response_model=BroadcastStateOut, summary="Diretta in corso, spettatori e chat")
def get_current_broadcast(manager: LiveSessionManager = Depends(get_live_manager)):
    return manager.state()


@router.post(
    "/current/chat",
    response_model=ChatMessageOut,
    status_code=status.HTTP_201_CREATED,
    summary="Invia un messaggio nella chat della diretta",
)
def post_chat_message(payload: ChatMessageIn, manager: LiveSessionManager = Depends(get_live_manager)):
    msg = manager.post_chat(payload.username, payload.message)
    if msg is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No live session in progress")
    return msg
