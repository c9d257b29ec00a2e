import os

# Ambiente di test: va impostato prima di importare app.core.config
os.environ.update(
    {
        "DATABASE_URL": "sqlite+pysqlite:///:memory:",
        "ADMIN_SECRET": "test-admin-secret",
        "SCHEDULER_ENABLED": "false",
        "EVENT_BUS_ENABLED": "false",
        "ACTIVITY_SIMULATION_ENABLED": "false",
        "ANNOUNCEMENTS_ENABLED": "true",
        "ANNOUNCEMENT_HASHTAGS": "#Live",
        "MEDIA_CAPTURE_MODE": "virtual",
        "ADMIN_WEBHOOK_URL": "",
        "ADMIN_WEBHOOK_SECRET": "",
        "LOG_LEVEL": "WARNING",
    }
)

from datetime import datetime, timedelta  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402

from app.core.live_manager import LiveSessionManager  # noqa: E402
from app.db.base import Base, import_models  # noqa: E402
from app.db.session import SessionLocal, engine  # noqa: E402
from app.models.live_session import LiveSession, LiveStatus  # noqa: E402
from app.services.media import VirtualMediaCapture  # noqa: E402

FIXED_NOW = datetime(2025, 3, 1, 18, 0, 0)


class FrozenClock:
    """Orologio controllabile dai test (naive UTC, come le colonne DB)."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def db_engine():
    import_models()
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture
def db(db_engine):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def capture():
    return VirtualMediaCapture()


@pytest.fixture
def transitions():
    """Raccoglie (event_type, snapshot, extra) emessi dal manager."""
    return []


@pytest.fixture
def manager(db_engine, capture, clock, transitions):
    def sink(db, event_type, session, extra):
        transitions.append((event_type, session, extra))

    mgr = LiveSessionManager(SessionLocal, capture, clock=clock, on_transition=sink)
    yield mgr
    mgr.teardown()


@pytest.fixture
def make_session(db, clock):
    """Inserisce direttamente una LiveSession con start_time relativo all'orologio di test."""

    def _make(
        title: str = "Town Hall",
        *,
        offset: Optional[timedelta] = None,
        status: LiveStatus = LiveStatus.scheduled,
        host_name: str = "State President",
        created_at: Optional[datetime] = None,
    ) -> LiveSession:
        offset = timedelta(minutes=10) if offset is None else offset
        row = LiveSession(
            title=title,
            host_name=host_name,
            participants=[],
            start_time=clock.now + offset,
            status=status.value,
            viewer_count=0,
            created_at=created_at or clock.now - timedelta(days=1),
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    return _make


@pytest.fixture
def reload(db):
    """Rilegge una sessione ignorando la identity map della sessione di test."""

    def _reload(session_id) -> Optional[LiveSession]:
        db.expire_all()
        return db.get(LiveSession, session_id)

    return _reload
