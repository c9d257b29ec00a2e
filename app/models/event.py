# app/models/event.py
import uuid

from sqlalchemy import Column, String, DateTime, Text, Index, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from app.db.base import Base


class Event(Base):
    __tablename__ = "events"

    # Core
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String(64), nullable=False)  # es: session_scheduled, session_started, session_ended, capture_failed
    description = Column(Text, nullable=True)

    # Chiave leggera verso live_sessions (niente FK: le sessioni possono essere cancellate dall'admin)
    session_id = Column(Uuid(as_uuid=True), nullable=True)

    payload = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Indici compositi utili per export/monitoraggio
    __table_args__ = (
        Index("ix_events_type_created_at", "type", "created_at"),
        Index("ix_events_session_id_created_at", "session_id", "created_at"),
    )
