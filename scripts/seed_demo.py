# scripts/seed_demo.py
import os, sys
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from datetime import timedelta

from app.core.utils import utcnow
from app.crud import live_session_crud
from app.db.session import SessionLocal
from app.models.live_session import LiveSession, LiveStatus
from app.schemas.live_session import LiveSessionCreate

# Offset rispetto ad "adesso": copre tutte le soglie del countdown
DEMO_SESSIONS = [
    {"title": "Karyakarta Samvad", "host_name": "State President", "offset": timedelta(seconds=45),
     "participants": "District President\nYouth Wing Head"},
    {"title": "Press Briefing", "host_name": "Media Cell", "offset": timedelta(minutes=4)},
    {"title": "Town Hall", "host_name": "State President", "offset": timedelta(hours=3),
     "description": "Questions from party workers", "meeting_link": "https://meet.example.org/town-hall"},
    {"title": "Foundation Day Address", "host_name": "National Spokesperson", "offset": timedelta(days=2, hours=1)},
]

def main():
    db = SessionLocal()
    try:
        existing = {s.title for s in db.query(LiveSession).filter(LiveSession.status == LiveStatus.scheduled.value)}
        now = utcnow()
        created = 0
        for data in DEMO_SESSIONS:
            if data["title"] in existing:
                continue
            payload = LiveSessionCreate(
                title=data["title"],
                host_name=data["host_name"],
                description=data.get("description"),
                participants=data.get("participants", []),
                meeting_link=data.get("meeting_link"),
                start_time=now + data["offset"],
            )
            _, err = live_session_crud.create_live_session(
                db, payload, now=now, status=LiveStatus.scheduled, created_by="seed"
            )
            if err:
                print(f"Skip {data['title']}: {err}")
                continue
            created += 1
        print(f"Seed completato. Sessioni programmate create: {created}.")
    finally:
        db.close()

if __name__ == "__main__":
    main()
