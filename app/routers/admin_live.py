# app/routers/admin_live.py
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_admin, get_live_manager
from app.api.errors import to_http
from app.core.errors import LiveSessionError
from app.core.live_manager import LiveSessionManager
from app.crud import live_session_crud
from app.db.session import get_db
from app.schemas.live_session import (
    BroadcastStateOut,
    LiveSessionCreate,
    LiveSessionOut,
    ToggleOut,
)

router = APIRouter(
    prefix="/api/admin/live",
    tags=["admin:live"],
    dependencies=[Depends(get_current_admin)],
)


# ---------------------------------------------------------------------
# Creazione: programmata (start_time futuro) oppure immediata
# ---------------------------------------------------------------------
@router.post(
    "/sessions",
    response_model=LiveSessionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Programma una diretta o vai in onda subito",
)
async def create_live_session(
    payload: LiveSessionCreate,
    manager: LiveSessionManager = Depends(get_live_manager),
    admin=Depends(get_current_admin),
):
    try:
        if payload.start_time is not None:
            return await manager.schedule(payload, created_by=admin.id)
        return await manager.go_live_now(payload, created_by=admin.id)
    except LiveSessionError as e:
        raise to_http(e)


@router.post(
    "/sessions/{session_id}/promote",
    response_model=LiveSessionOut,
    summary="Avvia ora una diretta programmata (anche retry dopo errore camera)",
)
async def promote_live_session(session_id: UUID, manager: LiveSessionManager = Depends(get_live_manager)):
    try:
        return await manager.promote_to_live(session_id)
    except LiveSessionError as e:
        raise to_http(e)


@router.post(
    "/sessions/{session_id}/stop",
    response_model=LiveSessionOut,
    summary="Termina una diretta (idempotente)",
)
async def stop_live_session(session_id: UUID, manager: LiveSessionManager = Depends(get_live_manager)):
    try:
        return await manager.stop_session(session_id)
    except LiveSessionError as e:
        raise to_http(e)


@router.delete(
    "/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Cancella una sessione (non quella in onda)",
)
def delete_live_session(
    session_id: UUID,
    db: Session = Depends(get_db),
    manager: LiveSessionManager = Depends(get_live_manager),
):
    if manager.current_session is not None and manager.current_session.id == session_id:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Stop the broadcast before deleting it")
    if not live_session_crud.delete_live_session(db, session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Live session not found")
    manager.forget_session(session_id)


# ---------------------------------------------------------------------
# Tracce locali
# ---------------------------------------------------------------------
@router.post("/media/audio/toggle", response_model=ToggleOut, summary="Mute / unmute microfono")
def toggle_audio(manager: LiveSessionManager = Depends(get_live_manager)):
    enabled = manager.toggle_audio()
    return {"kind": "audio", "enabled": enabled, "active_stream": manager.is_broadcasting}


@router.post("/media/video/toggle", response_model=ToggleOut, summary="Camera on / off")
def toggle_video(manager: LiveSessionManager = Depends(get_live_manager)):
    enabled = manager.toggle_video()
    return {"kind": "video", "enabled": enabled, "active_stream": manager.is_broadcasting}


# ---------------------------------------------------------------------
# Scheduler manuale (utile con SCHEDULER_ENABLED=false)
# ---------------------------------------------------------------------
@router.post("/tick", response_model=BroadcastStateOut, summary="Esegue subito un tick dello scheduler")
async def run_tick(manager: LiveSessionManager = Depends(get_live_manager)):
    try:
        await manager.tick()
    except LiveSessionError as e:
        raise to_http(e)
    return manager.state()
