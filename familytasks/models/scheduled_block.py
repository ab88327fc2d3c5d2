"""ScheduledBlock data model for FamilyTasks."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class Phase(str, Enum):
    """Work phase enumeration. Declaration order is the scheduling order."""
    INCUBATION = "incubation"
    DESIGN = "design"
    IMPLEMENTATION = "implementation"
    IMPROVEMENT = "improvement"


PHASE_ORDER = [Phase.INCUBATION, Phase.DESIGN, Phase.IMPLEMENTATION, Phase.IMPROVEMENT]


def phase_index(phase) -> int:
    """Position of a phase (enum or raw value) in the fixed phase order."""
    return PHASE_ORDER.index(Phase(phase))


class ScheduledBlock(BaseModel):
    """ScheduledBlock represents one phase-tagged work interval placed on the calendar."""

    id: str = Field(..., description="Unique scheduled block identifier")
    task_id: str = Field(..., description="ID of the task being scheduled")
    phase: Phase = Field(..., description="Phase this block works on")
    start_time: datetime = Field(..., description="Block start time")
    end_time: datetime = Field(..., description="Block end time")
    calendar_event_id: Optional[str] = Field(None, description="Calendar provider event ID once mirrored")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @model_validator(mode="after")
    def _check_interval(self):
        if self.end_time <= self.start_time:
            raise ValueError(f"Block {self.id} must end after it starts")
        return self

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)
