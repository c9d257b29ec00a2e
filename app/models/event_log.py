# app/models/event_log.py
import uuid
import enum
from sqlalchemy import Column, Integer, Text, DateTime, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from app.db.base import Base

class EventStatus(str, enum.Enum):
    queued = "queued"
    sent = "sent"
    failed = "failed"

class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    event_type = Column(Text, nullable=False, index=True)
    payload = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    # Notare: colonna TEXT (non Enum DB) ma coerente con l'EventStatus applicativo
    status = Column(Text, nullable=False, default=EventStatus.queued.value, index=True)
    retries = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
