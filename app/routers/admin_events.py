# app/routers/admin_events.py
from typing import List, Optional
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, BackgroundTasks, Query
from sqlalchemy.orm import Session
from sqlalchemy import select, and_, func

from app.api.deps import get_current_admin
from app.db.session import get_db
from app.models.event import Event
from app.models.event_log import EventLog, EventStatus
from app.schemas.event import EventOut
from app.schemas.event_log import EventsListOut, EventLogOut, RetryResultOut
from app.services import event_bus

router = APIRouter(
    prefix="/api/admin/events",
    tags=["admin:events"],
    dependencies=[Depends(get_current_admin)],
)


def _event_log_filters(
    status: Optional[EventStatus],
    event_type: Optional[str],
    since: Optional[datetime],
    until: Optional[datetime],
):
    filters = []
    if status:
        filters.append(EventLog.status == status.value)
    if event_type:
        filters.append(EventLog.event_type == event_type)
    if since:
        filters.append(EventLog.created_at >= since)
    if until:
        filters.append(EventLog.created_at <= until)
    return and_(*filters) if filters else None


# ---------------------------------------------------------------------
# Event Bus: consegne verso il webhook admin
# ---------------------------------------------------------------------
@router.get("", response_model=EventsListOut, summary="Log dell'Event Bus (consegne webhook)")
def list_events(
    db: Session = Depends(get_db),
    status: Optional[EventStatus] = Query(default=None),
    event_type: Optional[str] = Query(default=None, description="es. session_started, session_ended"),
    since: Optional[datetime] = Query(default=None, description="ISO datetime"),
    until: Optional[datetime] = Query(default=None, description="ISO datetime"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    order: str = Query(default="desc", pattern="^(asc|desc)$"),
):
    filt = _event_log_filters(status, event_type, since, until)

    count_stmt = select(func.count()).select_from(EventLog)
    page_stmt = select(EventLog)
    if filt is not None:
        count_stmt = count_stmt.where(filt)
        page_stmt = page_stmt.where(filt)

    total = db.execute(count_stmt).scalar() or 0
    order_col = EventLog.created_at.asc() if order == "asc" else EventLog.created_at.desc()
    rows = db.execute(page_stmt.order_by(order_col).offset(offset).limit(limit)).scalars().all()

    return {"items": [EventLogOut.model_validate(r) for r in rows], "count": total}


@router.post("/retry-failed", response_model=RetryResultOut, summary="Riprova le consegne fallite")
def retry_failed(
    background_tasks: BackgroundTasks,
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    ids = event_bus.retry_failed_events(db, background_tasks, limit=limit)
    return {"retried_count": len(ids), "scheduled_ids": ids, "limit": limit}


# ---------------------------------------------------------------------
# Storico transizioni (tabella events)
# ---------------------------------------------------------------------
@router.get("/transitions", response_model=List[EventOut], summary="Storico delle transizioni delle dirette")
def list_transitions(
    db: Session = Depends(get_db),
    session_id: Optional[UUID] = Query(default=None),
    event_type: Optional[str] = Query(default=None, alias="type"),
    limit: int = Query(default=100, ge=1, le=500),
):
    """
    Transizioni registrate (scheduled, started, ended, capture_failed),
    dalla più recente. Filtrabili per sessione e tipo.
    """
    stmt = select(Event)
    if session_id is not None:
        stmt = stmt.where(Event.session_id == session_id)
    if event_type:
        stmt = stmt.where(Event.type == event_type)
    stmt = stmt.order_by(Event.created_at.desc()).limit(limit)
    return [EventOut.model_validate(r) for r in db.execute(stmt).scalars().all()]
