# app/crud/live_session_crud.py
from typing import Iterable, List, Optional, Tuple
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models.live_session import LiveSession, LiveStatus
from app.schemas.live_session import LiveSessionCreate

# Codici errore di validazione (mappati a messaggi leggibili)
VALIDATION_MESSAGES = {
    "title_required": "Title and host name are required",
    "host_required": "Title and host name are required",
    "start_time_in_past": "Scheduled time must be in the future",
}


# =========================
#  VALIDAZIONE
# =========================
def validate_new_session(data: LiveSessionCreate, now: datetime) -> Optional[str]:
    """
    Ritorna None se i dati sono validi, altrimenti un codice errore.
    Nessun accesso al DB: va chiamata prima di qualsiasi insert.
    """
    if not (data.title or "").strip():
        return "title_required"
    if not (data.host_name or "").strip():
        return "host_required"
    if data.start_time is not None and data.start_time <= now:
        return "start_time_in_past"
    return None


# =========================
#  CREAZIONE
# =========================
def create_live_session(
    db: Session,
    data: LiveSessionCreate,
    *,
    now: datetime,
    status: LiveStatus,
    created_by: Optional[str] = None,
) -> Tuple[Optional[LiveSession], Optional[str]]:
    """
    Inserisce una nuova sessione. Ritorna (LiveSession, None) oppure (None, codice_errore).
    - status=scheduled: richiede start_time futuro.
    - status=live: start_time viene impostato a 'now'.
    """
    err = validate_new_session(data, now)
    if err:
        return None, err

    if status == LiveStatus.scheduled and data.start_time is None:
        return None, "start_time_in_past"

    start_time = data.start_time if status == LiveStatus.scheduled else now

    session = LiveSession(
        title=data.title.strip(),
        description=data.description,
        host_name=data.host_name.strip(),
        participants=list(data.participants or []),
        start_time=start_time,
        status=status.value,
        viewer_count=0,
        meeting_link=data.meeting_link,
        created_by=created_by,
        created_at=now,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session, None


# =========================
#  LETTURE
# =========================
def get_live_session(db: Session, session_id: UUID) -> Optional[LiveSession]:
    return db.get(LiveSession, session_id)


def list_upcoming(db: Session, now: datetime) -> List[LiveSession]:
    """
    Sessioni 'scheduled' con start_time >= now, in ordine crescente di inizio.
    Limite inclusivo: una sessione con start_time == now è sia "upcoming" sia
    dovuta per il tick (il countdown la mostra come "Starting Now!").
    """
    stmt = (
        select(LiveSession)
        .where(
            LiveSession.status == LiveStatus.scheduled.value,
            LiveSession.start_time >= now,
        )
        .order_by(LiveSession.start_time.asc(), LiveSession.created_at.asc())
    )
    return list(db.execute(stmt).scalars().all())


def find_due_sessions(
    db: Session,
    now: datetime,
    *,
    exclude_ids: Iterable[UUID] = (),
    limit: int = 1,
) -> List[LiveSession]:
    """
    Sessioni 'scheduled' già dovute (start_time <= now), la più vecchia per prima.
    exclude_ids: sessioni parcheggiate dopo un errore di acquisizione media.
    """
    stmt = select(LiveSession).where(
        LiveSession.status == LiveStatus.scheduled.value,
        LiveSession.start_time.is_not(None),
        LiveSession.start_time <= now,
    )
    excluded = list(exclude_ids)
    if excluded:
        stmt = stmt.where(LiveSession.id.not_in(excluded))
    stmt = stmt.order_by(
        LiveSession.start_time.asc(),
        LiveSession.created_at.asc(),
        LiveSession.id.asc(),
    ).limit(limit)
    return list(db.execute(stmt).scalars().all())


def list_by_status(db: Session, status: LiveStatus, limit: int = 50) -> List[LiveSession]:
    stmt = (
        select(LiveSession)
        .where(LiveSession.status == status.value)
        .order_by(LiveSession.start_time.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


# =========================
#  TRANSIZIONI (update condizionali)
# =========================
def promote_if_scheduled(
    db: Session,
    session_id: UUID,
    *,
    viewer_count: int = 0,
) -> Optional[LiveSession]:
    """
    scheduled -> live solo se lo stato corrente è ancora 'scheduled'.
    Ritorna None se un altro writer ha già cambiato lo stato (o la sessione non esiste).
    """
    result = db.execute(
        update(LiveSession)
        .where(
            LiveSession.id == session_id,
            LiveSession.status == LiveStatus.scheduled.value,
        )
        .values(status=LiveStatus.live.value, viewer_count=viewer_count)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        return None
    return get_live_session(db, session_id)


def end_if_live(db: Session, session_id: UUID, *, now: datetime) -> Optional[LiveSession]:
    """
    live -> ended con end_time=now, solo se lo stato corrente è 'live'.
    Ritorna None se la transizione non è avvenuta.
    """
    result = db.execute(
        update(LiveSession)
        .where(
            LiveSession.id == session_id,
            LiveSession.status == LiveStatus.live.value,
        )
        .values(status=LiveStatus.ended.value, end_time=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        return None
    return get_live_session(db, session_id)


def set_viewer_count(db: Session, session_id: UUID, viewer_count: int) -> bool:
    """Aggiorna il contatore spettatori (solo per sessioni ancora live)."""
    result = db.execute(
        update(LiveSession)
        .where(
            LiveSession.id == session_id,
            LiveSession.status == LiveStatus.live.value,
        )
        .values(viewer_count=max(0, int(viewer_count)))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


# =========================
#  CANCELLAZIONE (solo admin)
# =========================
def delete_live_session(db: Session, session_id: UUID) -> bool:
    session = get_live_session(db, session_id)
    if session is None:
        return False
    db.delete(session)
    db.commit()
    return True
