"""Scheduling engine for FamilyTasks."""

from familytasks.engine.errors import (
    SchedulingError,
    MissingDeadline,
    CapacityExceeded,
    ProviderUnavailable,
    InvalidEstimation,
)
from familytasks.engine.estimator import Estimator, classify_task, split_total, reduce_estimation
from familytasks.engine.learning import LearningStore, estimation_accuracy
from familytasks.engine.availability import AvailabilityFinder, AvailabilityResult, TimeSlot
from familytasks.engine.scheduler import PhaseAllocator, AllocationResult
from familytasks.engine.rescheduler import Rescheduler, RescheduleState
from familytasks.engine.calendar_sync import mirror_task_blocks, MirrorResult

__all__ = [
    "SchedulingError",
    "MissingDeadline",
    "CapacityExceeded",
    "ProviderUnavailable",
    "InvalidEstimation",
    "Estimator",
    "classify_task",
    "split_total",
    "reduce_estimation",
    "LearningStore",
    "estimation_accuracy",
    "AvailabilityFinder",
    "AvailabilityResult",
    "TimeSlot",
    "PhaseAllocator",
    "AllocationResult",
    "Rescheduler",
    "RescheduleState",
    "mirror_task_blocks",
    "MirrorResult",
]
