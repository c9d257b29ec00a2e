"""Tests for LiveSessionManager: tick, promotion, stop, media and chat."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import (
    BroadcastActiveError,
    MediaPermissionError,
    SessionNotFoundError,
    SessionStateError,
    SessionValidationError,
    StoreUnavailableError,
)
from app.core.live_manager import LiveSessionManager
from app.crud import live_session_crud
from app.db.session import SessionLocal
from app.models.live_session import LiveSession, LiveStatus
from app.schemas.live_session import LiveSessionCreate
from app.services.media import VirtualMediaCapture



class CountingCapture(VirtualMediaCapture):
    def __init__(self, mode: str = "virtual"):
        super().__init__(mode)
        self.attempts = 0

    async def acquire(self, constraints):
        self.attempts += 1
        return await super().acquire(constraints)


class RacingCapture(VirtualMediaCapture):
    """Mentre la camera si apre, un altro client promuove la stessa sessione."""

    def __init__(self, session_id):
        super().__init__()
        self.session_id = session_id

    async def acquire(self, constraints):
        stream = await super().acquire(constraints)
        other = SessionLocal()
        try:
            live_session_crud.promote_if_scheduled(other, self.session_id, viewer_count=3)
        finally:
            other.close()
        return stream


class FixedSimulator:
    def seed_viewers(self):
        return 20

    def next_viewer_count(self, current):
        return current + 1

    def maybe_chat_message(self):
        return "PriyaGupta", "Very informative"


def _statuses(db):
    db.expire_all()
    return {row.title: row.status for row in db.query(LiveSession).all()}


class TestTick:
    async def test_promotes_session_due_five_seconds_ago(self, manager, make_session, capture, transitions):
        # Arrange
        row = make_session(offset=timedelta(seconds=-5))
        countdown = manager.compute_countdown(row)
        assert (countdown.status, countdown.display) == ("starting", "Starting Now!")

        # Act
        started = await manager.tick()

        # Assert
        assert started is not None
        assert started.id == row.id
        assert started.status == LiveStatus.live
        assert manager.is_broadcasting
        assert len(capture.acquired) == 1
        assert manager.chat[0].username == "System"
        assert manager.chat[0].message == "Welcome to Town Hall! Chat is now active."
        assert transitions[-1][0] == "session_started"
        assert transitions[-1][2]["reason"] == "auto"

    async def test_future_session_is_not_promoted(self, manager, make_session, reload):
        row = make_session(offset=timedelta(seconds=30))

        assert await manager.tick() is None
        assert reload(row.id).status == LiveStatus.scheduled.value
        assert not manager.is_broadcasting

    async def test_at_most_one_promotion_per_tick(self, manager, make_session, db):
        make_session("A", offset=timedelta(seconds=-30))
        make_session("B", offset=timedelta(seconds=-20))
        make_session("C", offset=timedelta(seconds=-10))

        started = await manager.tick()

        assert started.title == "A"
        assert _statuses(db) == {"A": "live", "B": "scheduled", "C": "scheduled"}

    async def test_three_sessions_due_at_same_instant(self, manager, make_session, db):
        for title in ("A", "B", "C"):
            make_session(title, offset=timedelta(seconds=-5))

        started = await manager.tick()

        statuses = _statuses(db)
        assert statuses[started.title] == "live"
        assert sorted(statuses.values()) == ["live", "scheduled", "scheduled"]

    async def test_equal_start_times_promote_oldest_created(self, manager, make_session, clock):
        make_session("newer", offset=timedelta(seconds=-5), created_at=clock.now - timedelta(hours=1))
        make_session("older", offset=timedelta(seconds=-5), created_at=clock.now - timedelta(hours=2))

        started = await manager.tick()

        assert started.title == "older"

    async def test_second_due_session_waits_for_current_broadcast(self, manager, make_session, db):
        first = make_session("First", offset=timedelta(seconds=-10))
        make_session("Second", offset=timedelta(seconds=-5))

        assert (await manager.tick()).title == "First"
        # Un solo stream locale: il secondo tick non fa nulla
        assert await manager.tick() is None
        assert _statuses(db)["Second"] == "scheduled"

        await manager.stop_session(first.id)
        started = await manager.tick()

        assert started.title == "Second"
        assert _statuses(db) == {"First": "ended", "Second": "live"}

    async def test_lost_race_releases_stream(self, db_engine, make_session, clock, reload):
        row = make_session(offset=timedelta(seconds=-5))
        capture = RacingCapture(row.id)
        manager = LiveSessionManager(SessionLocal, capture, clock=clock)

        assert await manager.tick() is None

        assert not manager.is_broadcasting
        assert capture.acquired[0].active is False
        fresh = reload(row.id)
        assert fresh.status == LiveStatus.live.value
        assert fresh.viewer_count == 3

    async def test_store_unavailable_propagates(self, manager, monkeypatch):
        def boom(*args, **kwargs):
            raise OperationalError("SELECT live_sessions", {}, Exception("connection refused"))

        monkeypatch.setattr(live_session_crud, "find_due_sessions", boom)

        with pytest.raises(StoreUnavailableError):
            await manager.tick()


class TestCaptureFailure:
    async def test_denied_camera_parks_session(self, db_engine, make_session, clock, reload):
        transitions = []
        capture = CountingCapture(mode="denied")
        manager = LiveSessionManager(
            SessionLocal,
            capture,
            clock=clock,
            on_transition=lambda db, t, s, extra: transitions.append((t, extra)),
        )
        row = make_session(offset=timedelta(seconds=-5))

        assert await manager.tick() is None

        assert reload(row.id).status == LiveStatus.scheduled.value
        assert row.id in manager.parked_ids
        assert manager.last_error == MediaPermissionError.user_message
        assert transitions == [("capture_failed", {"error": "Permission denied by the user agent"})]

        # Nessun retry automatico
        assert await manager.tick() is None
        assert capture.attempts == 1

        # "Try again" esplicito dopo aver concesso il permesso
        capture.mode = "virtual"
        started = await manager.promote_to_live(row.id)

        assert started.status == LiveStatus.live
        assert manager.last_error is None
        assert manager.parked_ids == set()
        assert capture.attempts == 2
        manager.teardown()

    async def test_explicit_promote_with_denied_camera_raises(self, db_engine, make_session, clock, reload):
        manager = LiveSessionManager(SessionLocal, VirtualMediaCapture("denied"), clock=clock)
        row = make_session(offset=timedelta(minutes=5))

        with pytest.raises(MediaPermissionError):
            await manager.promote_to_live(row.id)

        assert reload(row.id).status == LiveStatus.scheduled.value
        assert row.id in manager.parked_ids


    async def test_forgotten_session_leaves_parked_set(self, db_engine, make_session, clock):
        manager = LiveSessionManager(SessionLocal, VirtualMediaCapture("denied"), clock=clock)
        row = make_session(offset=timedelta(seconds=-5))
        await manager.tick()
        assert manager.parked_ids == {row.id}

        manager.forget_session(row.id)

        assert manager.parked_ids == set()


class TestPromote:
    async def test_early_promotion_removes_from_upcoming(self, manager, make_session):
        row = make_session(offset=timedelta(minutes=2))
        assert [s.id for s in await manager.list_upcoming()] == [row.id]

        started = await manager.promote_to_live(row.id)

        assert started.status == LiveStatus.live
        assert await manager.list_upcoming() == []
        assert manager.current_session.id == row.id

    async def test_unknown_session(self, manager):
        with pytest.raises(SessionNotFoundError):
            await manager.promote_to_live(uuid.uuid4())

    async def test_only_scheduled_can_be_promoted(self, manager, make_session):
        row = make_session(status=LiveStatus.ended)

        with pytest.raises(SessionStateError):
            await manager.promote_to_live(row.id)

    async def test_busy_broadcaster_rejects_second_promotion(self, manager, make_session):
        first = make_session("First", offset=timedelta(minutes=1))
        second = make_session("Second", offset=timedelta(minutes=2))
        await manager.promote_to_live(first.id)

        with pytest.raises(BroadcastActiveError):
            await manager.promote_to_live(second.id)


class TestStop:
    async def test_stop_sets_end_time_and_releases_stream(self, manager, make_session, capture, clock, transitions):
        row = make_session(offset=timedelta(seconds=-5))
        await manager.tick()
        clock.advance(seconds=60)

        ended = await manager.stop_session(row.id)

        assert ended.status == LiveStatus.ended
        assert ended.end_time == clock.now
        assert not manager.is_broadcasting
        assert capture.acquired[0].active is False
        event_type, _, extra = transitions[-1]
        assert event_type == "session_ended"
        assert extra["duration_seconds"] == 65

    async def test_stop_is_idempotent(self, manager, make_session, clock, transitions):
        row = make_session(offset=timedelta(seconds=-5))
        await manager.tick()
        first = await manager.stop_session(row.id)
        clock.advance(minutes=3)

        second = await manager.stop_session(row.id)

        assert second.end_time == first.end_time
        assert second.status == LiveStatus.ended
        assert [t[0] for t in transitions].count("session_ended") == 1

    async def test_stop_scheduled_is_rejected(self, manager, make_session):
        row = make_session()

        with pytest.raises(SessionStateError):
            await manager.stop_session(row.id)

    async def test_stop_unknown(self, manager):
        with pytest.raises(SessionNotFoundError):
            await manager.stop_session(uuid.uuid4())

    async def test_stop_session_broadcast_elsewhere(self, manager, make_session, capture):
        row = make_session(status=LiveStatus.live, offset=timedelta(minutes=-10))

        ended = await manager.stop_session(row.id)

        assert ended.status == LiveStatus.ended
        assert capture.acquired == []

    async def test_stop_current_without_broadcast(self, manager):
        assert await manager.stop_current() is None


class TestCreate:
    async def test_schedule(self, manager, clock, transitions):
        data = LiveSessionCreate(
            title="  Press Briefing ",
            host_name="Media Cell",
            participants="Spokesperson\n\nDistrict Head\n",
            start_time=clock.now + timedelta(hours=1),
        )

        created = await manager.schedule(data, created_by="admin")

        assert created.status == LiveStatus.scheduled
        assert created.title == "Press Briefing"
        assert created.participants == ["Spokesperson", "District Head"]
        assert created.created_by == "admin"
        assert transitions[-1][0] == "session_scheduled"

    @pytest.mark.parametrize(
        "fields, code",
        [
            ({"title": "   ", "host_name": "Host"}, "title_required"),
            ({"title": "Title", "host_name": ""}, "host_required"),
        ],
    )
    async def test_schedule_rejects_missing_fields(self, manager, clock, db, fields, code):
        data = LiveSessionCreate(start_time=clock.now + timedelta(hours=1), **fields)

        with pytest.raises(SessionValidationError) as exc:
            await manager.schedule(data)

        assert exc.value.code == code
        assert db.query(LiveSession).count() == 0

    async def test_schedule_rejects_past_start(self, manager, clock):
        data = LiveSessionCreate(title="Late", host_name="Host", start_time=clock.now - timedelta(minutes=1))

        with pytest.raises(SessionValidationError) as exc:
            await manager.schedule(data)

        assert exc.value.code == "start_time_in_past"
        assert exc.value.message == "Scheduled time must be in the future"

    async def test_schedule_requires_start_time(self, manager):
        with pytest.raises(SessionValidationError) as exc:
            await manager.schedule(LiveSessionCreate(title="T", host_name="H"))
        assert exc.value.code == "start_time_required"

    async def test_go_live_now(self, manager, clock, capture, transitions):
        created = await manager.go_live_now(LiveSessionCreate(title="Rally", host_name="Host"))

        assert created.status == LiveStatus.live
        assert created.start_time == clock.now
        assert manager.is_broadcasting
        assert len(capture.acquired) == 1
        assert transitions[-1][2]["reason"] == "immediate"

    async def test_go_live_now_rejects_start_time(self, manager, clock):
        data = LiveSessionCreate(title="Rally", host_name="Host", start_time=clock.now + timedelta(hours=1))

        with pytest.raises(SessionValidationError) as exc:
            await manager.go_live_now(data)
        assert exc.value.code == "start_time_not_allowed"

    async def test_go_live_now_while_broadcasting(self, manager, capture):
        await manager.go_live_now(LiveSessionCreate(title="One", host_name="Host"))

        with pytest.raises(BroadcastActiveError):
            await manager.go_live_now(LiveSessionCreate(title="Two", host_name="Host"))
        assert len(capture.acquired) == 1

    async def test_go_live_now_denied_camera_writes_nothing(self, db_engine, clock, db):
        manager = LiveSessionManager(SessionLocal, VirtualMediaCapture("denied"), clock=clock)

        with pytest.raises(MediaPermissionError):
            await manager.go_live_now(LiveSessionCreate(title="Rally", host_name="Host"))

        assert db.query(LiveSession).count() == 0
        assert manager.state().last_error == MediaPermissionError.user_message


class TestMediaToggles:
    def test_toggle_without_stream(self, manager):
        assert manager.toggle_audio() is None
        assert manager.toggle_video() is None

    async def test_toggle_flips_track(self, manager):
        await manager.go_live_now(LiveSessionCreate(title="Rally", host_name="Host"))

        assert manager.toggle_audio() is False
        assert manager.state().audio_enabled is False
        assert manager.toggle_audio() is True
        assert manager.toggle_video() is False
        assert manager.state().video_enabled is False


class TestChatAndActivity:
    def test_chat_requires_live_session(self, manager):
        assert manager.post_chat("Someone", "hello") is None

    async def test_host_and_anonymous_messages(self, manager):
        await manager.go_live_now(LiveSessionCreate(title="Rally", host_name="State President"))

        host = manager.post_chat("State President", "Welcome all")
        anon = manager.post_chat("  ", "  hi  ")

        assert host.is_host is True
        assert anon.username == "Anonymous"
        assert anon.message == "hi"
        assert anon.is_host is False
        assert manager.post_chat("Someone", "   ") is None

    async def test_chat_history_is_bounded(self, db_engine, clock):
        manager = LiveSessionManager(SessionLocal, VirtualMediaCapture(), clock=clock, chat_history_limit=3)
        await manager.go_live_now(LiveSessionCreate(title="Rally", host_name="Host"))

        for i in range(5):
            manager.post_chat("Viewer", f"msg {i}")

        assert [m.message for m in manager.chat] == ["msg 2", "msg 3", "msg 4"]
        manager.teardown()

    async def test_activity_step_updates_viewers_and_chat(self, db_engine, clock, reload):
        manager = LiveSessionManager(SessionLocal, VirtualMediaCapture(), simulator=FixedSimulator(), clock=clock)
        created = await manager.go_live_now(LiveSessionCreate(title="Rally", host_name="Host"))
        assert manager.viewer_count == 20

        await manager.simulate_activity_step()

        assert manager.viewer_count == 21
        assert reload(created.id).viewer_count == 21
        assert manager.chat[-1].username == "PriyaGupta"
        manager.teardown()

    async def test_teardown_releases_stream_only(self, manager, capture, reload):
        created = await manager.go_live_now(LiveSessionCreate(title="Rally", host_name="Host"))

        manager.teardown()

        assert not manager.is_broadcasting
        assert capture.acquired[0].active is False
        assert reload(created.id).status == LiveStatus.live.value
        assert manager.state().is_live is False
