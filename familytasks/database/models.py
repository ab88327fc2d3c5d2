"""SQLAlchemy database models for FamilyTasks."""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime

from familytasks.database.database import Base


class KeyValueEntryDB(Base):
    """One opaque blob stored under a string key."""

    __tablename__ = "key_value_entries"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
