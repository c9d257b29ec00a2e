# app/core/countdown.py
"""
Calcolo del countdown verso l'inizio di una diretta.

Funzioni pure: nessun accesso al DB, nessun orologio implicito (``now`` è
sempre passato dal chiamante). Le soglie di urgenza sono inclusive sul
limite superiore: 10s -> starting-now, 60s -> starting-soon, 300s -> imminent.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Optional

from app.schemas.live_session import CountdownBreakdown, CountdownDisplay, CountdownStatus

STARTING_NOW_SECONDS = 10
STARTING_SOON_SECONDS = 60
IMMINENT_SECONDS = 300

STARTING_DISPLAY = "Starting Now!"

_AUTO_START_STATUSES = {"starting-now", "starting-soon", "imminent"}


def seconds_until(start_time: Optional[datetime], now: datetime) -> float:
    """Secondi mancanti all'inizio (negativi se già passato, 0 se start_time assente)."""
    if start_time is None:
        return 0.0
    return (start_time - now).total_seconds()


def classify(delta_seconds: float) -> CountdownStatus:
    if delta_seconds <= 0:
        return "starting"
    if delta_seconds <= STARTING_NOW_SECONDS:
        return "starting-now"
    if delta_seconds <= STARTING_SOON_SECONDS:
        return "starting-soon"
    if delta_seconds <= IMMINENT_SECONDS:
        return "imminent"
    return "scheduled"


def breakdown(delta_seconds: float) -> CountdownBreakdown:
    """Scompone i secondi interi rimanenti in giorni/ore/minuti/secondi (mai negativi)."""
    total = max(0, int(math.floor(delta_seconds)))
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    return CountdownBreakdown(days=days, hours=hours, minutes=minutes, seconds=seconds)


def render_units(parts: CountdownBreakdown) -> str:
    """
    "3d 4h 5m 6s", "2h 0m 5s", "7s": le unità più grandi spariscono finché
    sono zero, i secondi restano sempre.
    """
    units = [(parts.days, "d"), (parts.hours, "h"), (parts.minutes, "m")]
    out = []
    for value, suffix in units:
        if value or out:
            out.append(f"{value}{suffix}")
    out.append(f"{parts.seconds}s")
    return " ".join(out)


def compute_countdown(session: Any, now: datetime) -> CountdownDisplay:
    """
    Countdown per una sessione (qualsiasi oggetto con ``start_time``).
    """
    delta = seconds_until(getattr(session, "start_time", None), now)
    status = classify(delta)

    if status == "starting":
        return CountdownDisplay(
            status=status,
            display=STARTING_DISPLAY,
            breakdown=None,
            seconds_remaining=0,
            will_auto_start=True,
        )

    parts = breakdown(delta)
    return CountdownDisplay(
        status=status,
        display=render_units(parts),
        breakdown=parts,
        seconds_remaining=max(0, int(math.floor(delta))),
        will_auto_start=status in _AUTO_START_STATUSES,
    )


def time_until_live(start_time: Optional[datetime], now: datetime) -> str:
    """Testo lungo per l'intestazione "Next: ..." (es. '1 day, 2h 3m 4s remaining')."""
    delta = seconds_until(start_time, now)
    if delta <= 0:
        return "Starting now"

    parts = breakdown(delta)
    if parts.days > 0:
        label = "day" if parts.days == 1 else "days"
        return f"{parts.days} {label}, {parts.hours}h {parts.minutes}m {parts.seconds}s remaining"
    return f"{render_units(parts)} remaining"
