# app/db/base.py
from sqlalchemy.orm import declarative_base

# ------------------------------------------------------------
# BASE DICHIARATIVA SQLALCHEMY
# ------------------------------------------------------------
Base = declarative_base()


def import_models() -> None:
    """
    Registra tutti i modelli sul metadata di Base.
    Serve ad Alembic (autogenerate) e al create_all dei test.
    """
    from app.models import event, event_log, live_session, post  # noqa: F401
