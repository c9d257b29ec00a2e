# main.py
from __future__ import annotations

import logging
from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings

# ------------------------------------------------------------
# IMPORT ROUTER
# ------------------------------------------------------------
# API pubblica dirette (countdown, stato, chat)
from app.api.routes import router as live_router

# Routers amministrativi (gestione dirette + event bus)
from app.routers.admin_live import router as admin_live_router
from app.routers.admin_events import router as admin_events_router

# DB session
from app.db.session import get_db

# Scheduler: tick dirette programmate + retry eventi
from app.core.scheduler import start_scheduler, stop_scheduler


# ------------------------------------------------------------
# CREAZIONE DELL'APPLICAZIONE FASTAPI
# ------------------------------------------------------------
def create_app() -> FastAPI:
    """Crea e configura l'applicazione FastAPI Party Live."""
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    app_version = settings.APP_VERSION

    app = FastAPI(
        title=settings.APP_NAME,
        version=app_version,
        description=(
            "Backend delle dirette del sito del partito: "
            "programmazione delle sessioni live, avvio automatico allo scadere "
            "del countdown, chiusura, annunci sul feed ed Event Bus verso gli admin."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # --------------------------------------------------------
    # CORS
    # --------------------------------------------------------
    ALLOWED_ORIGINS = [
        "http://localhost",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    if settings.CORS_EXTRA:
        for item in [x.strip() for x in settings.CORS_EXTRA.split(",") if x.strip()]:
            if item not in ALLOWED_ORIGINS:
                ALLOWED_ORIGINS.append(item)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --------------------------------------------------------
    # ROUTES
    # --------------------------------------------------------
    app.include_router(live_router)
    app.include_router(admin_live_router)
    app.include_router(admin_events_router)

    # --------------------------------------------------------
    # ROOT DI SERVIZIO
    # --------------------------------------------------------
    @app.get("/", tags=["root"])
    def root():
        return {
            "status": "online",
            "service": settings.APP_NAME,
            "version": app_version,
        }

    # --------------------------------------------------------
    # VERSION
    # --------------------------------------------------------
    @app.get("/api/version", tags=["system"])
    def version():
        """Versione dell'applicazione (gestita via env APP_VERSION)."""
        return {"version": app_version}

    # --------------------------------------------------------
    # 🩺 HEALTHZ ENDPOINT (API + DB PING)
    # --------------------------------------------------------
    @app.get("/api/healthz", tags=["system"])
    def healthz(db: Session = Depends(get_db)):
        """
        Endpoint di verifica per deploy e monitoring.
        Controlla sia l'API sia la reachability del DB.
        """
        try:
            db.execute(text("SELECT 1"))
            return {
                "status": "ok",
                "service": "party-live-backend",
                "db": "ok",
                "version": app_version,
            }
        except SQLAlchemyError as e:
            # 503 = Service Unavailable
            raise HTTPException(
                status_code=503,
                detail={
                    "status": "degraded",
                    "db": "error",
                    "error": str(e),
                    "version": app_version,
                },
            )

    # --------------------------------------------------------
    # EVENTI DI AVVIO / ARRESTO
    # --------------------------------------------------------
    @app.on_event("startup")
    async def _on_startup():
        start_scheduler(app)

    @app.on_event("shutdown")
    async def _on_shutdown():
        await stop_scheduler(app)

    return app


# ------------------------------------------------------------
# ISTANZA APPLICAZIONE
# ------------------------------------------------------------
app = create_app()

# ------------------------------------------------------------
# AVVIO LOCALE
# ------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
