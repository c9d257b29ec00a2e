# app/services/live_events.py
"""
Effetti collaterali delle transizioni di una diretta.

Ogni transizione (scheduled / started / ended / capture_failed) viene:
  1) registrata nella tabella 'events'
  2) accodata sull'Event Bus (webhook admin), se abilitato
  3) notificata agli admin (Notifier)
  4) annunciata sul feed (solo started / ended), se abilitato
Nessuno di questi passi può bloccare la transizione: gli errori finiscono nel log.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.utils import log_event, utcnow
from app.schemas.live_session import LiveSessionOut
from app.services import announcements
from app.services.event_bus import TaskQueue, background_tasks, queue_event
from app.services.notify import Notifier

logger = logging.getLogger("uvicorn.error")

NOTIFY_TITLES = {
    "session_started": "Live Session Started",
    "session_ended": "Live Session Ended",
    "capture_failed": "Live Session Capture Failed",
}


def build_payload(event_type: str, session: LiveSessionOut, extra: Dict[str, Any]) -> Dict[str, Any]:
    """Payload JSON-serializzabile per events/event_logs (UUID e date come stringhe)."""
    payload: Dict[str, Any] = {
        "type": event_type,
        "session_id": str(session.id),
        "title": session.title,
        "occurred_at": utcnow().isoformat(),
    }
    if event_type == "session_scheduled":
        payload["start_time"] = session.start_time.isoformat() if session.start_time else None
        payload["host_name"] = session.host_name
    elif event_type == "session_started":
        payload["host_name"] = session.host_name
        payload["reason"] = extra.get("reason", "auto")
        payload["viewer_count"] = int(extra.get("viewer_count", session.viewer_count) or 0)
    elif event_type == "session_ended":
        payload["duration_seconds"] = int(extra.get("duration_seconds", 0) or 0)
        payload["viewer_count"] = int(extra.get("viewer_count", session.viewer_count) or 0)
    elif event_type == "capture_failed":
        payload["error"] = str(extra.get("error", "unknown"))
    return payload


def _describe(event_type: str, session: LiveSessionOut, extra: Dict[str, Any]) -> str:
    if event_type == "session_started":
        return f"title={session.title};reason={extra.get('reason', 'auto')}"
    if event_type == "session_ended":
        return f"title={session.title};duration={extra.get('duration_seconds', 0)}s"
    if event_type == "capture_failed":
        return f"title={session.title};error={extra.get('error')}"
    return f"title={session.title}"


def _announce(db: Session, event_type: str, session: LiveSessionOut, extra: Dict[str, Any]) -> None:
    if event_type == "session_started":
        content = announcements.build_live_announcement(session)
    elif event_type == "session_ended":
        content = announcements.build_end_announcement(
            session,
            viewer_count=int(extra.get("viewer_count", session.viewer_count) or 0),
            duration_seconds=int(extra.get("duration_seconds", 0) or 0),
        )
    else:
        return
    announcements.publish_post(db, content, created_by=session.created_by)


def record_transition(
    db: Session,
    event_type: str,
    session: LiveSessionOut,
    extra: Optional[Dict[str, Any]] = None,
    tasks: Optional[TaskQueue] = None,
) -> Dict[str, Any]:
    """
    Registra una transizione su tutti i canali. Ritorna il payload generato.
    """
    extra = dict(extra or {})
    payload = build_payload(event_type, session, extra)

    log_event(db, event_type, _describe(event_type, session, extra), session_id=session.id, payload=payload)

    if settings.EVENT_BUS_ENABLED:
        try:
            queue_event(db, tasks or background_tasks, event_type, payload)
        except (ValueError, SQLAlchemyError, RuntimeError):
            db.rollback()
            logger.exception("[live-events] queue_event fallito per %s", event_type)

    if event_type in NOTIFY_TITLES:
        Notifier().notify(NOTIFY_TITLES[event_type], payload)

    if settings.ANNOUNCEMENTS_ENABLED:
        try:
            _announce(db, event_type, session, extra)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("[live-events] annuncio fallito per %s", event_type)

    return payload
