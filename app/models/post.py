# app/models/post.py
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Text, DateTime, Uuid

from app.db.base import Base


class Post(Base):
    """
    Post del feed social. Qui serve solo per gli annunci automatici
    delle dirette (inizio / fine); il resto del feed è gestito altrove.
    """

    __tablename__ = "posts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    content = Column(Text, nullable=False)
    image_url = Column(String(500), nullable=True)
    created_by = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=False), default=datetime.utcnow, nullable=False)
