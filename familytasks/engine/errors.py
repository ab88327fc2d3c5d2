"""Scheduling error taxonomy for FamilyTasks."""

from typing import Optional


class SchedulingError(Exception):
    """Base class for errors scoped to one task or one calendar day."""


class MissingDeadline(SchedulingError):
    """Allocation requested for a task without a deadline. Never retried."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} must have a deadline for scheduling")


class InvalidEstimation(SchedulingError):
    """Phase minutes do not add up to the estimation total."""

    def __init__(self, task_id: str, phase_sum: int, total: int):
        self.task_id = task_id
        self.phase_sum = phase_sum
        self.total = total
        super().__init__(
            f"Estimation for task {task_id} is inconsistent: phases sum to {phase_sum}, total is {total}"
        )


class CapacityExceeded(SchedulingError):
    """Not enough free time before the deadline to place every phase."""

    def __init__(self, task_id: str, required_minutes: int, available_minutes: int):
        self.task_id = task_id
        self.required_minutes = required_minutes
        self.available_minutes = available_minutes
        super().__init__(
            f"Not enough available time to schedule all phases of task {task_id} before its deadline. "
            f"Need {required_minutes} minutes, but only {available_minutes} minutes available."
        )

    @property
    def shortfall_minutes(self) -> int:
        return max(0, self.required_minutes - self.available_minutes)


class ProviderUnavailable(SchedulingError):
    """Calendar provider query or mutation failed."""

    def __init__(self, message: str, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(message)
