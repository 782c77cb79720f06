# meet_engine/models/person.py
from datetime import datetime

from sqlalchemy import Column, String, DateTime
from meet_engine.models.base import Base


class Person(Base):
    """
    Contact card for a coach or client.

    Only the notification sink reads it; meetings and participants refer to
    people by their opaque id and never require a row here.
    """

    __tablename__ = "people"

    id = Column(String(64), primary_key=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    timezone = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
