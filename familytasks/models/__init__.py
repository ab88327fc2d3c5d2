"""Data models for FamilyTasks."""

from familytasks.models.task import Task, TaskStatus, TaskPriority
from familytasks.models.scheduled_block import ScheduledBlock, Phase, PHASE_ORDER
from familytasks.models.estimation import Estimation, ActualTime
from familytasks.models.working_hours import WorkingHours, DayHours
from familytasks.models.learning import (
    LearningRecord,
    LearningHistoryEntry,
    LearningInsights,
    PhaseDistribution,
    AdjustmentReason,
)
from familytasks.models.rescheduling_event import (
    ReschedulingEvent,
    RescheduleTrigger,
    ScheduleChange,
    ScheduleWindow,
)
from familytasks.models.calendar import BusyInterval, CalendarChangeNotification, ChangeKind

__all__ = [
    "Task",
    "TaskStatus",
    "TaskPriority",
    "ScheduledBlock",
    "Phase",
    "PHASE_ORDER",
    "Estimation",
    "ActualTime",
    "WorkingHours",
    "DayHours",
    "LearningRecord",
    "LearningHistoryEntry",
    "LearningInsights",
    "PhaseDistribution",
    "AdjustmentReason",
    "ReschedulingEvent",
    "RescheduleTrigger",
    "ScheduleChange",
    "ScheduleWindow",
    "BusyInterval",
    "CalendarChangeNotification",
    "ChangeKind",
]
