"""Tests for the background scheduler wiring."""

import asyncio
from datetime import timedelta

from fastapi import FastAPI
from sqlalchemy.exc import OperationalError

from app.core import scheduler
from app.core.config import settings
from app.core.live_manager import LiveSessionManager
from app.crud import live_session_crud
from app.db.session import SessionLocal
from app.services.media import VirtualMediaCapture


async def test_run_live_tick_promotes_due_session(manager, make_session):
    make_session(offset=timedelta(seconds=-5))

    assert await scheduler.run_live_tick(manager) is True
    assert manager.is_broadcasting


async def test_run_live_tick_survives_store_outage(manager, monkeypatch):
    def boom(*args, **kwargs):
        raise OperationalError("SELECT live_sessions", {}, Exception("connection refused"))

    monkeypatch.setattr(live_session_crud, "find_due_sessions", boom)

    assert await scheduler.run_live_tick(manager) is False


async def test_disabled_scheduler_still_builds_manager(db_engine):
    app = FastAPI()

    scheduler.start_scheduler(app)

    assert app.state.live_manager is not None
    assert app.state.live_tick_task is None
    assert app.state.retry_task is None
    await scheduler.stop_scheduler(app)


async def test_enabled_scheduler_starts_and_stops_tick_loop(db_engine, monkeypatch):
    monkeypatch.setattr(settings, "SCHEDULER_ENABLED", True)
    monkeypatch.setattr(settings, "LIVE_TICK_INTERVAL_SECONDS", 0.1)
    app = FastAPI()

    scheduler.start_scheduler(app)
    task = app.state.live_tick_task
    await asyncio.sleep(0)

    assert task is not None
    assert not task.done()
    assert app.state.retry_task is None

    await scheduler.stop_scheduler(app)

    assert task.cancelled()
    assert app.state.live_tick_task is None


class FlakyCapture(VirtualMediaCapture):
    """Il primo acquire fallisce con un errore inatteso del driver."""

    def __init__(self):
        super().__init__()
        self.failures_left = 1

    async def acquire(self, constraints):
        if self.failures_left:
            self.failures_left -= 1
            raise RuntimeError("driver hiccup")
        return await super().acquire(constraints)


async def test_run_live_tick_survives_unexpected_error(db_engine, make_session, clock):
    manager = LiveSessionManager(SessionLocal, FlakyCapture(), clock=clock)
    make_session(offset=timedelta(seconds=-5))

    assert await scheduler.run_live_tick(manager) is False
    assert not manager.is_broadcasting

    # Il tick successivo fa da retry
    assert await scheduler.run_live_tick(manager) is True
    assert manager.is_broadcasting
    manager.teardown()


async def test_tick_loop_keeps_running_after_unexpected_error(db_engine, make_session, clock, monkeypatch):
    monkeypatch.setattr(settings, "LIVE_TICK_INTERVAL_SECONDS", 0.1)
    manager = LiveSessionManager(SessionLocal, FlakyCapture(), clock=clock)
    make_session(offset=timedelta(seconds=-5))

    task = asyncio.get_running_loop().create_task(scheduler._live_tick_loop(manager))
    await asyncio.sleep(0.5)

    try:
        assert not task.done()
        assert manager.is_broadcasting
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        manager.teardown()
