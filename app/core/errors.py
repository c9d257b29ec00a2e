# app/core/errors.py
from __future__ import annotations

from typing import Optional
from uuid import UUID


class LiveSessionError(Exception):
    """Base di tutti gli errori del ciclo di vita delle dirette."""


# ------------------------------------------------------------
# Record store
# ------------------------------------------------------------
class StoreUnavailableError(LiveSessionError):
    """Il database non è raggiungibile (errore di trasporto/connessione)."""


# ------------------------------------------------------------
# Validazione (sempre prima di toccare il DB)
# ------------------------------------------------------------
class SessionValidationError(LiveSessionError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


# ------------------------------------------------------------
# Stato / transizioni
# ------------------------------------------------------------
class SessionNotFoundError(LiveSessionError):
    def __init__(self, session_id: UUID):
        super().__init__(f"Live session {session_id} not found")
        self.session_id = session_id


class SessionStateError(LiveSessionError):
    """Transizione non ammessa (es. stop di una sessione ancora 'scheduled')."""

    def __init__(self, session_id: UUID, status: str, action: str):
        super().__init__(f"Cannot {action} live session {session_id} in status '{status}'")
        self.session_id = session_id
        self.status = status
        self.action = action


class SessionConflictError(LiveSessionError):
    """Update condizionale perso: un altro client ha già cambiato lo stato."""

    def __init__(self, session_id: UUID, expected_status: str):
        super().__init__(f"Live session {session_id} is no longer '{expected_status}'")
        self.session_id = session_id
        self.expected_status = expected_status


class BroadcastActiveError(LiveSessionError):
    """Questo client sta già trasmettendo un'altra sessione."""

    def __init__(self, current_id: Optional[UUID]):
        super().__init__(f"A local broadcast is already active (session {current_id})")
        self.current_id = current_id


# ------------------------------------------------------------
# Acquisizione media (camera / microfono)
# ------------------------------------------------------------
class MediaCaptureError(LiveSessionError):
    user_message = "Unable to start the camera and microphone."


class MediaPermissionError(MediaCaptureError):
    user_message = "Failed to access camera. Please ensure camera permissions are granted."


class MediaDeviceError(MediaCaptureError):
    user_message = "No camera or microphone is available on this device."
