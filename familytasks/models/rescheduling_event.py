"""ReschedulingEvent data model for FamilyTasks."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class RescheduleTrigger(str, Enum):
    """What caused a rescheduling pass."""
    CALENDAR_CHANGE = "calendar_change"
    TASK_UPDATE = "task_update"
    MANUAL_ADJUSTMENT = "manual_adjustment"


class ScheduleWindow(BaseModel):
    """Earliest block start and latest block end of a task."""

    start: datetime
    end: datetime

    class Config:
        frozen = True


class ScheduleChange(BaseModel):
    """Old vs new schedule window of one task."""

    task_id: str
    old_schedule: Optional[ScheduleWindow] = None
    new_schedule: ScheduleWindow

    class Config:
        frozen = True


class ReschedulingEvent(BaseModel):
    """Auditable record of one rescheduling pass. Immutable once built."""

    id: str = Field(..., description="Unique rescheduling event identifier")
    trigger: RescheduleTrigger = Field(..., description="What triggered the pass")
    affected_task_ids: List[str] = Field(default_factory=list, description="Tasks considered in the pass")
    timestamp: datetime = Field(default_factory=datetime.now, description="Event timestamp")
    changes: List[ScheduleChange] = Field(default_factory=list, description="Tasks whose window moved")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        frozen = True
