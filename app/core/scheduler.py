# app/core/scheduler.py
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import StoreUnavailableError
from app.core.live_manager import LiveSessionManager
from app.db.session import SessionLocal  # Factory SQLAlchemy
from app.services.activity import NullActivitySimulator, RandomActivitySimulator
from app.services.event_bus import background_tasks, retry_failed_events
from app.services.live_events import record_transition
from app.services.media import build_media_capture

# Usiamo il logger di uvicorn così i messaggi compaiono in console
logger = logging.getLogger("uvicorn.error")


# ---------------------------------------------------------------------
# COSTRUZIONE DEL MANAGER (uno per applicazione)
# ---------------------------------------------------------------------
def build_live_manager() -> LiveSessionManager:
    simulator = RandomActivitySimulator() if settings.ACTIVITY_SIMULATION_ENABLED else NullActivitySimulator()
    return LiveSessionManager(
        SessionLocal,
        build_media_capture(),
        simulator=simulator,
        on_transition=record_transition,
        activity_interval=settings.ACTIVITY_INTERVAL_SECONDS if settings.ACTIVITY_SIMULATION_ENABLED else None,
        chat_history_limit=settings.CHAT_HISTORY_LIMIT,
    )


# ---------------------------------------------------------------------
# LOOP 1: TICK DELLE DIRETTE PROGRAMMATE
# ---------------------------------------------------------------------
async def run_live_tick(manager: LiveSessionManager) -> bool:
    """
    Un singolo giro del tick. Ritorna False se il giro è fallito
    (l'errore è già nel log, il prossimo tick fa da retry).
    """
    try:
        started = await manager.tick()
        if started is not None:
            logger.info(f"[live-tick] auto-started '{started.title}' ({started.id})")
        return True
    except StoreUnavailableError as e:
        logger.warning(f"[live-tick] record store unavailable, retry next tick: {e}")
    except SQLAlchemyError as e:
        logger.exception(f"[live-tick] database error in tick: {e!r}")
    except Exception as e:
        logger.exception(f"[live-tick] unexpected error in tick: {e!r}")
    return False


async def _live_tick_loop(manager: LiveSessionManager) -> None:
    """
    Loop periodico:
    - ogni LIVE_TICK_INTERVAL_SECONDS controlla le sessioni dovute.
    - il timer riparte solo dopo la fine del giro precedente (niente tick sovrapposti).
    - non lancia eccezioni verso l'alto (il loop non deve morire).
    """
    interval = max(0.1, float(settings.LIVE_TICK_INTERVAL_SECONDS))
    logger.info(f"[live-tick] loop started (interval={interval}s)")

    while True:
        await run_live_tick(manager)
        await asyncio.sleep(interval)


# ---------------------------------------------------------------------
# LOOP 2: RETRY EVENTI FALLITI (Event Bus)
# ---------------------------------------------------------------------
async def _retry_loop() -> None:
    """
    Loop periodico:
    - ogni RETRY_INTERVAL_SECONDS seleziona gli eventi FAILED e li riprogramma.
    - usa un limite 'RETRY_LIMIT' per batch.
    """
    interval = max(5, int(settings.RETRY_INTERVAL_SECONDS))
    limit = max(1, int(settings.RETRY_LIMIT))

    while True:
        try:
            db: Session = SessionLocal()
            try:
                scheduled = retry_failed_events(db, background_tasks, limit=limit)
                if scheduled:
                    logger.info(f"[scheduler] retried {len(scheduled)} failed events")
            finally:
                db.close()
        except Exception as e:
            logger.exception(f"[scheduler] error in retry loop: {e!r}")

        await asyncio.sleep(interval)


# ---------------------------------------------------------------------
# AVVIO / ARRESTO SCHEDULER
# ---------------------------------------------------------------------
def start_scheduler(app: FastAPI) -> None:
    """
    Crea il LiveSessionManager dell'applicazione e avvia i task di background
    solo se abilitati via settings:
    - live_tick_task: promozione automatica delle dirette programmate
    - retry_task: retry eventi falliti
    """
    if getattr(app.state, "live_manager", None) is None:
        app.state.live_manager = build_live_manager()

    if not settings.SCHEDULER_ENABLED:
        logger.info("[scheduler] disabled by settings")
        app.state.live_tick_task = None
        app.state.retry_task = None
        return

    loop = asyncio.get_running_loop()

    # Evita doppi avvii in reload
    if getattr(app.state, "live_tick_task", None) is None:
        app.state.live_tick_task = loop.create_task(_live_tick_loop(app.state.live_manager))
        logger.info("[scheduler] started (live tick loop)")

    if settings.EVENT_BUS_ENABLED and getattr(app.state, "retry_task", None) is None:
        app.state.retry_task = loop.create_task(_retry_loop())
        logger.info("[scheduler] started (retry loop)")


async def _cancel(task: Optional[asyncio.Task]) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


async def stop_scheduler(app: FastAPI) -> None:
    """
    Arresta i task in modo pulito su shutdown e rilascia lo stream locale.
    """
    await _cancel(getattr(app.state, "live_tick_task", None))
    app.state.live_tick_task = None

    await _cancel(getattr(app.state, "retry_task", None))
    app.state.retry_task = None

    manager: Optional[LiveSessionManager] = getattr(app.state, "live_manager", None)
    if manager is not None:
        manager.teardown()
    logger.info("[scheduler] stopped")
