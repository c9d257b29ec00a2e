# app/services/event_bus.py
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Any, Optional, List, Protocol, Set
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy import select

from app.models.event_log import EventLog, EventStatus
from app.core.webhook import post_webhook
from app.core.config import settings
from app.schemas.event import validate_event_payload

logger = logging.getLogger("uvicorn.error")


class TaskQueue(Protocol):
    """Stessa interfaccia di fastapi.BackgroundTasks.add_task."""

    def add_task(self, func, *args, **kwargs) -> None:
        ...


class AsyncioTasks:
    """
    Shim di BackgroundTasks per i job fuori da una request
    (tick loop, retry loop): avvia il task senza attenderlo.
    Tiene un riferimento ai task finché non terminano.
    """

    def __init__(self):
        self.tasks: Set[asyncio.Task] = set()

    def add_task(self, func, *args, **kwargs) -> None:
        task = asyncio.get_running_loop().create_task(func(*args, **kwargs))
        self.tasks.add(task)
        task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task) -> None:
        self.tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("[event-bus] delivery task failed", exc_info=task.exception())


# Holder condiviso per le consegne avviate fuori da una request
background_tasks = AsyncioTasks()


def _utcnow() -> datetime:
    """Ritorna ora UTC con tzinfo per coerenza DB."""
    return datetime.now(timezone.utc)


def _default_factory() -> sessionmaker:
    from app.db.session import SessionLocal
    return SessionLocal


async def deliver_event(event_log_id: UUID, session_factory: Optional[sessionmaker] = None) -> Optional[EventStatus]:
    """
    Consegna dell'evento (con una sessione DB propria, la request è già chiusa):
    - Se ADMIN_WEBHOOK_URL è vuoto/None => no-op success (mark as sent).
    - Payload non valido => failed senza invio.
    - Altrimenti tenta il post_webhook e aggiorna lo stato.
    """
    db: Session = (session_factory or _default_factory())()
    try:
        ev: Optional[EventLog] = db.execute(
            select(EventLog).where(EventLog.id == event_log_id)
        ).scalar_one_or_none()

        if ev is None:
            return None  # niente da fare

        # Fallback NO-OP SUCCESS se il webhook non è configurato
        webhook_url = (settings.ADMIN_WEBHOOK_URL or "").strip()
        if not webhook_url:
            ev.status = EventStatus.sent.value
            ev.delivered_at = _utcnow()
            ev.last_error = None
            db.commit()
            return EventStatus.sent

        # ✅ Hardening: valida il payload (se malformato, marca failed e non inviare)
        try:
            payload_for_validation: Dict[str, Any] = dict(ev.payload or {})
            payload_for_validation.setdefault("type", ev.event_type)
            validate_event_payload(payload_for_validation)
        except ValueError as e:
            ev.status = EventStatus.failed.value
            ev.retries = (ev.retries or 0) + 1
            ev.last_error = f"validation_error: {e!r}"
            db.commit()
            return EventStatus.failed

        ok, err = await post_webhook(ev.event_type, ev.payload)

        if ok:
            ev.status = EventStatus.sent.value
            ev.delivered_at = _utcnow()
            ev.last_error = None
        else:
            ev.status = EventStatus.failed.value
            ev.retries = (ev.retries or 0) + 1
            ev.last_error = err
        db.commit()
        return EventStatus.sent if ok else EventStatus.failed
    finally:
        db.close()


def retry_failed_events(
    db: Session,
    tasks: TaskQueue,
    limit: int = 200,
) -> List[UUID]:
    """
    Seleziona gli eventi in stato FAILED e li riprogramma per la consegna.
    Ritorna la lista di ID schedulati (max 'limit').
    """
    stmt = (
        select(EventLog.id)
        .where(EventLog.status == EventStatus.failed.value)
        .order_by(EventLog.created_at.desc())
        .limit(limit)
    )
    ids = [row[0] for row in db.execute(stmt).all()]
    for ev_id in ids:
        tasks.add_task(deliver_event, ev_id)
    return ids


def queue_event(
    db: Session,
    tasks: TaskQueue,
    event_type: str,
    payload: Dict[str, Any],
) -> EventLog:
    """
    Accoda un evento per la consegna asincrona.
    - Validazione tipizzata del payload rispetto a `event_type`.
    - `payload["type"]` viene forzato a `event_type`.
    """
    if not event_type or not isinstance(event_type, str):
        raise ValueError("event_type deve essere una stringa non vuota")
    if payload is None or not isinstance(payload, dict):
        raise ValueError("payload deve essere un dict")

    normalized_payload: Dict[str, Any] = dict(payload)
    normalized_payload["type"] = event_type

    try:
        validate_event_payload(normalized_payload)
    except ValueError as e:
        raise ValueError(f"payload non valido per event_type '{event_type}': {e!r}") from e

    ev = EventLog(event_type=event_type, payload=normalized_payload, status=EventStatus.queued.value)
    db.add(ev)
    db.commit()
    db.refresh(ev)

    # Consegna asincrona
    tasks.add_task(deliver_event, ev.id)
    return ev
