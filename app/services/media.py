# app/services/media.py
"""
Acquisizione locale audio/video per la diretta.

Il dispositivo reale (camera/microfono) è un collaboratore esterno: qui
definiamo il contratto (MediaCapture -> MediaStream -> MediaTrack) e una
implementazione virtuale in-process usata in sviluppo e nei test.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from app.core.config import settings
from app.core.errors import MediaDeviceError, MediaPermissionError

logger = logging.getLogger("uvicorn.error")


@dataclass
class MediaConstraints:
    audio: bool = True
    video: bool = True


@dataclass
class MediaTrack:
    kind: str  # "audio" | "video"
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    enabled: bool = True
    stopped: bool = False

    def stop(self) -> None:
        if not self.stopped:
            self.stopped = True
            self.enabled = False


@dataclass
class MediaStream:
    tracks: List[MediaTrack] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def get_tracks(self, kind: Optional[str] = None) -> List[MediaTrack]:
        if kind is None:
            return list(self.tracks)
        return [t for t in self.tracks if t.kind == kind]

    def get_audio_tracks(self) -> List[MediaTrack]:
        return self.get_tracks("audio")

    def get_video_tracks(self) -> List[MediaTrack]:
        return self.get_tracks("video")

    @property
    def active(self) -> bool:
        return any(not t.stopped for t in self.tracks)

    def stop(self) -> None:
        """Ferma tutte le tracce (rilascio del dispositivo)."""
        for track in self.tracks:
            track.stop()


class MediaCapture(Protocol):
    async def acquire(self, constraints: MediaConstraints) -> MediaStream:
        """Ritorna uno stream attivo o solleva MediaPermissionError / MediaDeviceError."""
        ...


class VirtualMediaCapture:
    """
    Dispositivo virtuale:
      - mode="virtual"     -> stream con una traccia per tipo richiesto
      - mode="denied"      -> MediaPermissionError (permesso negato)
      - mode="unavailable" -> MediaDeviceError (nessun dispositivo)
    """

    MODES = ("virtual", "denied", "unavailable")

    def __init__(self, mode: str = "virtual"):
        if mode not in self.MODES:
            raise ValueError(f"MEDIA_CAPTURE_MODE non valido: {mode!r}")
        self.mode = mode
        self.acquired: List[MediaStream] = []

    async def acquire(self, constraints: MediaConstraints) -> MediaStream:
        if self.mode == "denied":
            raise MediaPermissionError("Permission denied by the user agent")
        if self.mode == "unavailable":
            raise MediaDeviceError("Requested device not found")
        if not (constraints.audio or constraints.video):
            raise MediaDeviceError("At least one of audio or video must be requested")

        tracks = []
        if constraints.video:
            tracks.append(MediaTrack(kind="video"))
        if constraints.audio:
            tracks.append(MediaTrack(kind="audio"))
        stream = MediaStream(tracks=tracks)
        self.acquired.append(stream)
        logger.info("[media] acquired virtual stream %s (%d tracks)", stream.id, len(tracks))
        return stream


def build_media_capture() -> MediaCapture:
    """Collaboratore di default in base a MEDIA_CAPTURE_MODE."""
    return VirtualMediaCapture(mode=settings.MEDIA_CAPTURE_MODE)
