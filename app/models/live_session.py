# app/models/live_session.py
import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    Index,
    JSON,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


class LiveStatus(str, enum.Enum):
    scheduled = "scheduled"
    live = "live"
    ended = "ended"


class LiveSession(Base):
    __tablename__ = "live_sessions"

    # UUID della sessione live
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    host_name = Column(String(128), nullable=False)

    # Nomi liberi, nell'ordine inserito dall'admin
    participants = Column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        default=list,
    )

    # Inizio programmato (UTC naive). "Go live now" lo valorizza con l'istante di creazione
    start_time = Column(DateTime(timezone=False), nullable=True)

    # Valorizzato solo quando la sessione passa a "ended"
    end_time = Column(DateTime(timezone=False), nullable=True)

    # scheduled -> live -> ended (monotono)
    status = Column(
        String(16),
        nullable=False,
        default=LiveStatus.scheduled.value,
    )

    # Solo visualizzazione
    viewer_count = Column(Integer, nullable=False, default=0)

    meeting_link = Column(String(500), nullable=True)

    # Identità admin che ha creato la sessione
    created_by = Column(String(128), nullable=True)

    created_at = Column(
        DateTime(timezone=False),
        default=datetime.utcnow,
        nullable=False,
    )

    # --- INDICI --------------------------------------------------------
    __table_args__ = (
        Index("ix_live_sessions_status_start_time", "status", "start_time"),
    )

    # --- PROPERTY UTILI ------------------------------------------------
    @property
    def is_scheduled(self) -> bool:
        return self.status == LiveStatus.scheduled.value

    @property
    def is_live(self) -> bool:
        return self.status == LiveStatus.live.value

    @property
    def is_ended(self) -> bool:
        return self.status == LiveStatus.ended.value

    @property
    def duration_seconds(self) -> int:
        """
        Durata della diretta (start_time -> end_time), 0 se non ancora conclusa.
        """
        if self.start_time is None or self.end_time is None:
            return 0
        return max(0, int((self.end_time - self.start_time).total_seconds()))
