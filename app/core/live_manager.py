# app/core/live_manager.py
"""
Gestore del ciclo di vita delle dirette (scheduled -> live -> ended).

Un'istanza per applicazione (app.state.live_manager), creata all'avvio e
distrutta allo shutdown. Possiede:
  - la sessione che questo client sta trasmettendo (current_session)
  - lo stream locale audio/video (in esclusiva, per tutta la diretta)
  - la simulazione spettatori/chat

Tutte le transizioni passano da un unico asyncio.Lock: il tick periodico e i
comandi admin non possono sovrapporsi all'interno dello stesso processo.
Tra processi diversi la protezione è l'update condizionale sul DB.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from app.core.countdown import compute_countdown, time_until_live
from app.core.errors import (
    BroadcastActiveError,
    MediaCaptureError,
    SessionConflictError,
    SessionNotFoundError,
    SessionStateError,
    SessionValidationError,
    StoreUnavailableError,
)
from app.core.utils import utcnow
from app.crud import live_session_crud
from app.models.live_session import LiveStatus
from app.schemas.live_session import (
    BroadcastStateOut,
    ChatMessageOut,
    CountdownDisplay,
    LiveSessionCreate,
    LiveSessionOut,
)
from app.services.activity import ActivitySimulator, NullActivitySimulator
from app.services.media import MediaCapture, MediaConstraints, MediaStream

logger = logging.getLogger("uvicorn.error")

# (db, event_type, snapshot, extra) -> None
TransitionSink = Callable[[Session, str, LiveSessionOut, Dict[str, Any]], Any]
Clock = Callable[[], datetime]


def _null_sink(db: Session, event_type: str, session: LiveSessionOut, extra: Dict[str, Any]) -> None:
    return None


class LiveSessionManager:
    def __init__(
        self,
        session_factory: sessionmaker,
        media_capture: MediaCapture,
        *,
        simulator: Optional[ActivitySimulator] = None,
        clock: Clock = utcnow,
        on_transition: Optional[TransitionSink] = None,
        constraints: Optional[MediaConstraints] = None,
        activity_interval: Optional[float] = None,
        chat_history_limit: int = 200,
    ):
        self._session_factory = session_factory
        self._media = media_capture
        self._simulator: ActivitySimulator = simulator or NullActivitySimulator()
        self._clock = clock
        self._on_transition: TransitionSink = on_transition or _null_sink
        self._constraints = constraints or MediaConstraints()
        self._activity_interval = activity_interval

        self._lock = asyncio.Lock()
        self._stream: Optional[MediaStream] = None
        self._activity_task: Optional[asyncio.Task] = None
        # Sessioni dovute ma con acquisizione media fallita: niente retry automatico
        self._parked: Set[UUID] = set()

        self.current_session: Optional[LiveSessionOut] = None
        self.viewer_count: int = 0
        self.last_error: Optional[str] = None
        self.chat: Deque[ChatMessageOut] = deque(maxlen=chat_history_limit)

    # ------------------------------------------------------------------
    # Helpers store
    # ------------------------------------------------------------------
    def _store(self, db: Session, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Esegue una chiamata sul DB traducendo gli errori di connessione."""
        try:
            return fn(db, *args, **kwargs)
        except (OperationalError, InterfaceError) as e:
            db.rollback()
            raise StoreUnavailableError(f"record store unavailable: {e.orig!r}") from e

    def _emit(self, db: Session, event_type: str, session: LiveSessionOut, **extra: Any) -> None:
        try:
            self._on_transition(db, event_type, session, extra)
        except Exception:
            # Il sink (log/webhook/annunci) non deve mai annullare una transizione già scritta
            logger.exception("[live] transition sink failed for %s (%s)", event_type, session.id)

    @property
    def is_broadcasting(self) -> bool:
        return self._stream is not None and self.current_session is not None

    @property
    def parked_ids(self) -> Set[UUID]:
        return set(self._parked)

    def forget_session(self, session_id: UUID) -> None:
        """Dimentica una sessione rimossa dallo store (es. cancellata dall'admin)."""
        self._parked.discard(session_id)

    # ------------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------------
    async def list_upcoming(self, now: Optional[datetime] = None) -> List[LiveSessionOut]:
        now = now or self._clock()
        db = self._session_factory()
        try:
            rows = self._store(db, live_session_crud.list_upcoming, now)
            return [LiveSessionOut.model_validate(r) for r in rows]
        finally:
            db.close()

    async def get_session(self, session_id: UUID) -> LiveSessionOut:
        db = self._session_factory()
        try:
            row = self._store(db, live_session_crud.get_live_session, session_id)
            if row is None:
                raise SessionNotFoundError(session_id)
            return LiveSessionOut.model_validate(row)
        finally:
            db.close()

    def compute_countdown(self, session: Any, now: Optional[datetime] = None) -> CountdownDisplay:
        return compute_countdown(session, now or self._clock())

    async def next_countdown(
        self, now: Optional[datetime] = None
    ) -> Tuple[Optional[LiveSessionOut], Optional[CountdownDisplay], Optional[str]]:
        """Prossima sessione in programma con countdown e testo 'time until live'."""
        now = now or self._clock()
        upcoming = await self.list_upcoming(now)
        if not upcoming:
            return None, None, None
        nxt = upcoming[0]
        return nxt, compute_countdown(nxt, now), time_until_live(nxt.start_time, now)

    # ------------------------------------------------------------------
    # Creazione
    # ------------------------------------------------------------------
    async def schedule(
        self,
        data: LiveSessionCreate,
        now: Optional[datetime] = None,
        created_by: Optional[str] = None,
    ) -> LiveSessionOut:
        """Crea una sessione 'scheduled' (start_time obbligatorio e futuro)."""
        now = now or self._clock()
        if data.start_time is None:
            raise SessionValidationError("start_time_required", "A scheduled session needs a start time")
        err = live_session_crud.validate_new_session(data, now)
        if err:
            raise SessionValidationError(err, live_session_crud.VALIDATION_MESSAGES[err])

        db = self._session_factory()
        try:
            row, err = self._store(
                db,
                live_session_crud.create_live_session,
                data,
                now=now,
                status=LiveStatus.scheduled,
                created_by=created_by,
            )
            if err:
                raise SessionValidationError(err, live_session_crud.VALIDATION_MESSAGES[err])
            snapshot = LiveSessionOut.model_validate(row)
            logger.info("[live] scheduled '%s' (%s) for %s", snapshot.title, snapshot.id, snapshot.start_time)
            self._emit(db, "session_scheduled", snapshot)
            return snapshot
        finally:
            db.close()

    async def go_live_now(
        self,
        data: LiveSessionCreate,
        now: Optional[datetime] = None,
        created_by: Optional[str] = None,
    ) -> LiveSessionOut:
        """
        Diretta immediata: valida, acquisisce camera/microfono e solo dopo
        scrive il record già 'live' (start_time = now).
        """
        if data.start_time is not None:
            raise SessionValidationError("start_time_not_allowed", "An immediate session has no start time")
        now = now or self._clock()
        err = live_session_crud.validate_new_session(data, now)
        if err:
            raise SessionValidationError(err, live_session_crud.VALIDATION_MESSAGES[err])

        async with self._lock:
            if self.is_broadcasting:
                raise BroadcastActiveError(self.current_session.id)

            stream = await self._acquire()
            db = self._session_factory()
            try:
                row, err = self._store(
                    db,
                    live_session_crud.create_live_session,
                    data,
                    now=now,
                    status=LiveStatus.live,
                    created_by=created_by,
                )
                if err:
                    raise SessionValidationError(err, live_session_crud.VALIDATION_MESSAGES[err])
                seed = self._simulator.seed_viewers()
                self._store(db, live_session_crud.set_viewer_count, row.id, seed)
                db.refresh(row)
                snapshot = LiveSessionOut.model_validate(row)
            except BaseException:
                stream.stop()
                db.close()
                raise

            try:
                self._start_broadcast(snapshot, stream, seed)
                self._emit(db, "session_started", snapshot, reason="immediate", viewer_count=seed)
            finally:
                db.close()
            return snapshot

    # ------------------------------------------------------------------
    # Tick periodico
    # ------------------------------------------------------------------
    async def tick(self, now: Optional[datetime] = None) -> Optional[LiveSessionOut]:
        """
        Un giro dello scheduler: se questo client non sta già trasmettendo,
        promuove la sessione dovuta più vecchia (al massimo una per tick).
        Gli errori di DB risalgono al loop chiamante, che riprova al tick successivo.
        """
        now = now or self._clock()
        async with self._lock:
            if self.is_broadcasting:
                return None

            db = self._session_factory()
            try:
                due = self._store(db, live_session_crud.find_due_sessions, now, exclude_ids=self._parked, limit=1)
                candidate = LiveSessionOut.model_validate(due[0]) if due else None
            finally:
                db.close()

            if candidate is None:
                return None

            countdown = compute_countdown(candidate, now)
            logger.info(
                "[live-tick] session '%s' (%s) due: countdown=%s, promoting",
                candidate.title,
                candidate.id,
                countdown.status,
            )
            try:
                return await self._promote(candidate.id, reason="auto")
            except MediaCaptureError:
                # Già registrato e parcheggiato: serve un retry esplicito
                return None
            except SessionConflictError:
                logger.info("[live-tick] session %s already promoted by another writer", candidate.id)
                return None

    # ------------------------------------------------------------------
    # Promozione
    # ------------------------------------------------------------------
    async def promote_to_live(self, session_id: UUID, now: Optional[datetime] = None) -> LiveSessionOut:
        """
        Promozione esplicita (anche "try again" dopo un errore camera).
        Ammessa solo da 'scheduled'; nessun controllo su start_time (avvio anticipato).
        """
        async with self._lock:
            self._parked.discard(session_id)
            db = self._session_factory()
            try:
                row = self._store(db, live_session_crud.get_live_session, session_id)
                if row is None:
                    raise SessionNotFoundError(session_id)
                if row.status != LiveStatus.scheduled.value:
                    raise SessionStateError(session_id, row.status, "promote")
            finally:
                db.close()
            return await self._promote(session_id, reason="manual")

    async def _promote(self, session_id: UUID, reason: str) -> LiveSessionOut:
        """Da chiamare con il lock acquisito."""
        if self.is_broadcasting:
            raise BroadcastActiveError(self.current_session.id)

        try:
            stream = await self._acquire()
        except MediaCaptureError as e:
            self._parked.add(session_id)
            db = self._session_factory()
            try:
                row = self._store(db, live_session_crud.get_live_session, session_id)
                if row is not None:
                    self._emit(db, "capture_failed", LiveSessionOut.model_validate(row), error=str(e))
            except StoreUnavailableError:
                logger.warning("[live] store unavailable while recording capture failure for %s", session_id)
            finally:
                db.close()
            raise

        seed = self._simulator.seed_viewers()
        db = self._session_factory()
        try:
            try:
                row = self._store(db, live_session_crud.promote_if_scheduled, session_id, viewer_count=seed)
            except StoreUnavailableError:
                stream.stop()
                raise
            if row is None:
                stream.stop()
                raise SessionConflictError(session_id, LiveStatus.scheduled.value)

            snapshot = LiveSessionOut.model_validate(row)
            self._start_broadcast(snapshot, stream, seed)
            logger.info("[live] '%s' (%s) is LIVE (reason=%s)", snapshot.title, snapshot.id, reason)
            self._emit(db, "session_started", snapshot, reason=reason, viewer_count=seed)
            return snapshot
        finally:
            db.close()

    async def _acquire(self) -> MediaStream:
        try:
            stream = await self._media.acquire(self._constraints)
        except MediaCaptureError as e:
            self.last_error = e.user_message
            logger.warning("[live] media capture failed: %s", e)
            raise
        self.last_error = None
        return stream

    def _start_broadcast(self, session: LiveSessionOut, stream: MediaStream, seed: int) -> None:
        self.current_session = session
        self._stream = stream
        self.viewer_count = seed
        self.chat.clear()
        self._add_chat("System", f"Welcome to {session.title}! Chat is now active.")
        if self._activity_interval:
            self._activity_task = asyncio.get_running_loop().create_task(self._activity_loop())

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------
    async def stop_session(self, session_id: UUID, now: Optional[datetime] = None) -> LiveSessionOut:
        """
        live -> ended (end_time = now). Idempotente: una sessione già 'ended'
        viene restituita così com'è. Rilascia lo stream locale se è la diretta corrente.
        """
        now = now or self._clock()
        async with self._lock:
            db = self._session_factory()
            try:
                row = self._store(db, live_session_crud.get_live_session, session_id)
                if row is None:
                    raise SessionNotFoundError(session_id)

                if row.status == LiveStatus.ended.value:
                    snapshot = LiveSessionOut.model_validate(row)
                    self._release_if_current(session_id)
                    return snapshot

                if row.status == LiveStatus.scheduled.value:
                    raise SessionStateError(session_id, row.status, "stop")

                viewer_count = self.viewer_count if self._is_current(session_id) else row.viewer_count
                ended = self._store(db, live_session_crud.end_if_live, session_id, now=now)
                if ended is None:
                    # Chiusa da un altro writer nel frattempo: stessa risposta del caso idempotente
                    row = self._store(db, live_session_crud.get_live_session, session_id)
                    if row is None:
                        raise SessionNotFoundError(session_id)
                    self._release_if_current(session_id)
                    return LiveSessionOut.model_validate(row)

                snapshot = LiveSessionOut.model_validate(ended)
                self._release_if_current(session_id)
                duration = 0
                if snapshot.start_time and snapshot.end_time:
                    duration = max(0, int((snapshot.end_time - snapshot.start_time).total_seconds()))
                logger.info("[live] '%s' (%s) ended after %ss", snapshot.title, snapshot.id, duration)
                self._emit(db, "session_ended", snapshot, duration_seconds=duration, viewer_count=viewer_count)
                return snapshot
            finally:
                db.close()

    async def stop_current(self, now: Optional[datetime] = None) -> Optional[LiveSessionOut]:
        if self.current_session is None:
            return None
        return await self.stop_session(self.current_session.id, now)

    def _is_current(self, session_id: UUID) -> bool:
        return self.current_session is not None and self.current_session.id == session_id

    def _release_if_current(self, session_id: UUID) -> None:
        if self._is_current(session_id):
            self._release_stream()

    def _release_stream(self) -> None:
        if self._activity_task is not None:
            self._activity_task.cancel()
            self._activity_task = None
        if self._stream is not None:
            self._stream.stop()
            self._stream = None
        self.current_session = None
        self.viewer_count = 0
        self.chat.clear()

    def teardown(self) -> None:
        """Rilascio sincrono di stream e task (shutdown / chiusura della vista)."""
        if self.current_session is not None:
            logger.info("[live] teardown: releasing local stream for %s", self.current_session.id)
        self._release_stream()

    # ------------------------------------------------------------------
    # Tracce locali
    # ------------------------------------------------------------------
    def toggle_audio(self) -> Optional[bool]:
        return self._toggle("audio")

    def toggle_video(self) -> Optional[bool]:
        return self._toggle("video")

    def _toggle(self, kind: str) -> Optional[bool]:
        if self._stream is None:
            logger.warning("[live] toggle %s ignored: no active stream", kind)
            return None
        tracks = self._stream.get_tracks(kind)
        if not tracks:
            logger.warning("[live] toggle %s ignored: stream has no %s track", kind, kind)
            return None
        track = tracks[0]
        track.enabled = not track.enabled
        return track.enabled

    def _track_enabled(self, kind: str) -> Optional[bool]:
        if self._stream is None:
            return None
        tracks = self._stream.get_tracks(kind)
        return tracks[0].enabled if tracks else None

    # ------------------------------------------------------------------
    # Chat e simulazione attività
    # ------------------------------------------------------------------
    def _add_chat(self, username: str, message: str, is_host: bool = False) -> ChatMessageOut:
        msg = ChatMessageOut(
            id=uuid.uuid4().hex,
            username=username,
            message=message,
            timestamp=self._clock(),
            is_host=is_host,
        )
        self.chat.append(msg)
        return msg

    def post_chat(self, username: Optional[str], message: str) -> Optional[ChatMessageOut]:
        """Messaggio di uno spettatore; None se non c'è una diretta o il testo è vuoto."""
        if self.current_session is None or not (message or "").strip():
            return None
        display_name = (username or "").strip() or "Anonymous"
        is_host = display_name == self.current_session.host_name
        return self._add_chat(display_name, message.strip(), is_host=is_host)

    async def simulate_activity_step(self) -> None:
        if self.current_session is None:
            return
        self.viewer_count = self._simulator.next_viewer_count(self.viewer_count)
        db = self._session_factory()
        try:
            self._store(db, live_session_crud.set_viewer_count, self.current_session.id, self.viewer_count)
        except StoreUnavailableError:
            logger.warning("[live-activity] viewer count not persisted (store unavailable)")
        finally:
            db.close()

        chat = self._simulator.maybe_chat_message()
        if chat is not None:
            self._add_chat(*chat)

    async def _activity_loop(self) -> None:
        while self.current_session is not None:
            await asyncio.sleep(self._activity_interval)
            await self.simulate_activity_step()

    # ------------------------------------------------------------------
    # Stato per il layer di presentazione
    # ------------------------------------------------------------------
    def state(self) -> BroadcastStateOut:
        return BroadcastStateOut(
            is_live=self.is_broadcasting,
            session=self.current_session,
            viewer_count=self.viewer_count if self.current_session else 0,
            audio_enabled=self._track_enabled("audio"),
            video_enabled=self._track_enabled("video"),
            last_error=self.last_error,
            chat=list(self.chat),
        )
