# app/core/utils.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session
from app.models.event import Event

logger = logging.getLogger("uvicorn.error")

# ------------------------------------------------------------
# Time Helpers
# ------------------------------------------------------------

def utcnow() -> datetime:
    """Restituisce l'orario UTC corrente (naive, come le colonne DB)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def to_naive_utc(value: datetime) -> datetime:
    """Converte un datetime aware in UTC naive; i naive sono già considerati UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

# ------------------------------------------------------------
# Event Logging Utility
# ------------------------------------------------------------

def log_event(
    db: Session,
    event_type: str,
    description: Optional[str] = None,
    session_id: Optional[UUID] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Registra un evento applicativo nella tabella 'events'.

    :param db: sessione SQLAlchemy attiva
    :param event_type: tipo evento (es. 'session_scheduled', 'session_started', 'session_ended')
    :param description: testo descrittivo opzionale
    :param session_id: eventuale riferimento a sessione live
    :param payload: dati strutturati opzionali
    """
    try:
        ev = Event(type=event_type, description=description, session_id=session_id, payload=payload)
        db.add(ev)
        db.commit()
        return True
    except Exception:
        # In caso di errore, non bloccare mai il flusso principale
        db.rollback()
        logger.exception("[log_event] errore durante il salvataggio evento %s", event_type)
        return False
