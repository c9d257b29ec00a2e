# app/services/announcements.py
"""
Annunci automatici sul feed quando una diretta inizia o finisce.
"""
from __future__ import annotations

import re
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.post import Post
from app.schemas.live_session import LiveSessionOut


def format_duration(seconds: int) -> str:
    """mm:ss (i minuti possono superare 59)."""
    seconds = max(0, int(seconds))
    mins, secs = divmod(seconds, 60)
    return f"{mins:02d}:{secs:02d}"


def _title_hashtag(title: str) -> str:
    return "#" + re.sub(r"\s+", "", title)


def build_live_announcement(session: LiveSessionOut, hashtags: Optional[str] = None) -> str:
    hashtags = settings.ANNOUNCEMENT_HASHTAGS if hashtags is None else hashtags
    lines = [f"🔴 LIVE NOW: {session.title}", "", f"Host: {session.host_name}"]
    if session.description:
        lines += ["", session.description]
    if session.participants:
        lines += ["", f"Participants: {', '.join(session.participants)}"]
    if session.meeting_link:
        lines += ["", f"Join: {session.meeting_link}"]
    lines += ["", " ".join(t for t in (hashtags, _title_hashtag(session.title)) if t)]
    return "\n".join(lines)


def build_end_announcement(
    session: LiveSessionOut,
    *,
    viewer_count: int,
    duration_seconds: int,
    hashtags: Optional[str] = None,
) -> str:
    hashtags = settings.ANNOUNCEMENT_HASHTAGS if hashtags is None else hashtags
    lines = [
        f'📺 Live session ended: "{session.title}"',
        "",
        "Thank you to everyone who joined!",
        f"Total viewers: {viewer_count}",
        "",
        f"Host: {session.host_name}",
        f"Duration: {format_duration(duration_seconds)}",
    ]
    if hashtags:
        lines += ["", f"{hashtags} #LiveEnded"]
    return "\n".join(lines)


def publish_post(db: Session, content: str, created_by: Optional[str] = None) -> Post:
    post = Post(content=content, created_by=created_by)
    db.add(post)
    db.commit()
    db.refresh(post)
    return post
