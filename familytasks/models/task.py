"""Task data model for FamilyTasks."""

from datetime import datetime
from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field

from familytasks.models.estimation import Estimation, ActualTime
from familytasks.models.scheduled_block import ScheduledBlock
from familytasks.models.rescheduling_event import ReschedulingEvent, ScheduleWindow


class TaskStatus(str, Enum):
    """Task status enumeration (kanban columns)."""
    TODO = "todo"
    DOING = "doing"
    DONE = "done"
    NOTE = "note"


class TaskPriority(str, Enum):
    """Task priority enumeration."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class Task(BaseModel):
    """Canonical Task model."""

    id: str = Field(..., description="Unique task identifier (UUID v4)")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Free-form task description")
    status: TaskStatus = Field(TaskStatus.TODO, description="Task status")
    project: Optional[str] = Field(None, description="Declared project name")
    keywords: List[str] = Field(default_factory=list, description="Free-form keywords (hashtags)")
    priority: TaskPriority = Field(TaskPriority.NORMAL, description="Task priority")
    deadline: Optional[datetime] = Field(None, description="Task deadline")
    notification_at: Optional[datetime] = Field(None, description="Reminder instant (independent of deadline)")
    created_at: datetime = Field(default_factory=datetime.now, description="Task creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.now, description="Task last update timestamp")

    # Scheduling state
    estimation: Optional[Estimation] = Field(None, description="Phase duration breakdown")
    actual_time: Optional[ActualTime] = Field(None, description="Observed minutes per phase")
    scheduled_blocks: List[ScheduledBlock] = Field(default_factory=list, description="Placed work blocks")
    scheduled_start: Optional[datetime] = Field(None, description="Start of the earliest block")
    scheduled_end: Optional[datetime] = Field(None, description="End of the latest block")
    last_rescheduled: Optional[datetime] = Field(None, description="Last rescheduling timestamp")
    rescheduling_history: List[ReschedulingEvent] = Field(
        default_factory=list,
        description="Rescheduling events that moved this task",
    )

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    def schedule_window(self) -> Optional[ScheduleWindow]:
        """Return (earliest block start, latest block end), or None if unscheduled."""
        if not self.scheduled_blocks:
            return None
        return ScheduleWindow(
            start=min(b.start_time for b in self.scheduled_blocks),
            end=max(b.end_time for b in self.scheduled_blocks),
        )

    def references_calendar_event(self, calendar_event_id: str) -> bool:
        return any(b.calendar_event_id == calendar_event_id for b in self.scheduled_blocks)
