"""Calendar provider data shapes for FamilyTasks."""

from datetime import datetime
from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field

from familytasks.models.constants import DEFAULT_CALENDAR_ID


class BusyInterval(BaseModel):
    """A busy period reported by the calendar provider."""

    start: datetime
    end: datetime
    task_id: Optional[str] = Field(None, description="Owning task when the event mirrors a scheduled block")


class ChangeKind(str, Enum):
    """Kind of change reported for an external calendar event."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class CalendarChangeNotification(BaseModel):
    """Change signal delivered by a webhook or poller."""

    change_kind: ChangeKind = Field(..., description="What happened to the event")
    external_event_id: str = Field(..., min_length=1, description="Provider event ID")
    calendar_id: str = Field(DEFAULT_CALENDAR_ID, description="Provider calendar ID")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
