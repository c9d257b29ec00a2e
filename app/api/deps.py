# app/api/deps.py
from __future__ import annotations

import hmac
from types import SimpleNamespace
from fastapi import Header, HTTPException, Request, status

from app.core.config import settings
from app.core.live_manager import LiveSessionManager


# ==========================================================
#  LIVE MANAGER (uno per applicazione, creato allo startup)
# ==========================================================
def get_live_manager(request: Request) -> LiveSessionManager:
    manager = getattr(request.app.state, "live_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Live manager not initialised",
        )
    return manager


# ==========================================================
#  CONTROLLO ADMIN (tramite header segreto)
# ==========================================================
# Accesso alle rotte admin tramite header segreto semplice:
#   X-Admin-Secret: <valore>
# Il valore atteso è ADMIN_SECRET (env).
#   bash/zsh   →  export ADMIN_SECRET="IL_TUO_SEGRETO_LUNGO"
# ==========================================================
def get_current_admin(
    x_admin_secret: str | None = Header(None, alias="X-Admin-Secret"),
):
    expected = settings.ADMIN_SECRET or ""

    if x_admin_secret and expected and hmac.compare_digest(x_admin_secret, expected):
        # utente admin minimale (namespace) per le dipendenze a valle
        return SimpleNamespace(id="admin", role="admin", is_admin=True)

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated (missing or invalid X-Admin-Secret)",
    )
