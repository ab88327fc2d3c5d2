"""Rescheduling engine for FamilyTasks.

Reacts to calendar changes, task edits and manual triggers by re-estimating
and re-allocating the affected tasks. Each pass produces an immutable
ReschedulingEvent listing the tasks whose schedule window moved.

Only one pass runs at a time per Rescheduler; triggers that arrive while a
pass is in progress are dropped, not queued.
"""

import logging
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional

from familytasks.config import RelaxationPolicy
from familytasks.database.repository import TaskRepository, ReschedulingEventRepository
from familytasks.engine.errors import CapacityExceeded
from familytasks.engine.estimator import Estimator, reduce_estimation
from familytasks.engine.scheduler import AllocationResult, PhaseAllocator
from familytasks.integrations.calendar_provider import CalendarProvider
from familytasks.models.calendar import CalendarChangeNotification
from familytasks.models.constants import RESCHEDULING_HISTORY_CAP
from familytasks.models.estimation import Estimation
from familytasks.models.rescheduling_event import (
    ReschedulingEvent,
    RescheduleTrigger,
    ScheduleChange,
    ScheduleWindow,
)
from familytasks.models.task import Task
from familytasks.models.working_hours import WorkingHours

logger = logging.getLogger(__name__)

ReschedulingListener = Callable[[ReschedulingEvent], None]


class RescheduleState(str, Enum):
    """State of the most recent rescheduling pass."""
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class Rescheduler:
    """Recomputes schedules for affected tasks and records what moved."""

    def __init__(
        self,
        estimator: Estimator,
        allocator: PhaseAllocator,
        events: ReschedulingEventRepository,
        tasks: Optional[TaskRepository] = None,
        provider: Optional[CalendarProvider] = None,
        working_hours: Optional[WorkingHours] = None,
        buffer_minutes: int = 15,
        relaxation: Optional[RelaxationPolicy] = None,
        history_cap: int = RESCHEDULING_HISTORY_CAP,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.estimator = estimator
        self.allocator = allocator
        self.events = events
        self.tasks = tasks
        self.provider = provider
        self.working_hours = working_hours or WorkingHours.default()
        self.buffer_minutes = buffer_minutes
        self.relaxation = relaxation or RelaxationPolicy()
        self.history_cap = history_cap
        self.clock = clock
        self.state = RescheduleState.IDLE
        self._listeners: Dict[str, ReschedulingListener] = {}

    @property
    def in_progress(self) -> bool:
        return self.state == RescheduleState.IN_PROGRESS

    def add_listener(self, listener_id: str, listener: ReschedulingListener) -> None:
        self._listeners[listener_id] = listener

    def remove_listener(self, listener_id: str) -> None:
        self._listeners.pop(listener_id, None)

    def history(self) -> List[ReschedulingEvent]:
        return self.events.get_all()

    def _notify_listeners(self, event: ReschedulingEvent) -> None:
        for listener_id, listener in list(self._listeners.items()):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Rescheduling listener {listener_id} failed for event {event.id}")

    async def reschedule_affected(
        self,
        tasks: List[Task],
        trigger: RescheduleTrigger,
        working_hours: Optional[WorkingHours] = None,
        buffer_minutes: Optional[int] = None,
    ) -> Optional[ReschedulingEvent]:
        """Reschedule `tasks`; returns None if another pass is already running."""
        if self.in_progress:
            logger.info(f"Rescheduling already in progress, dropping {RescheduleTrigger(trigger).value} trigger")
            return None
        self.state = RescheduleState.IN_PROGRESS
        return await self._run_pass(tasks, trigger, working_hours, buffer_minutes)

    async def handle_external_change(
        self, notification: CalendarChangeNotification
    ) -> Optional[ReschedulingEvent]:
        """Reschedule tasks whose stored blocks reference the changed provider event."""
        if self.in_progress:
            logger.info(f"Rescheduling already in progress, skipping change to {notification.external_event_id}")
            return None
        if self.tasks is None:
            raise RuntimeError("handle_external_change requires a task repository")

        logger.info(f"Calendar change detected: {notification.change_kind} - {notification.external_event_id}")
        affected = self.tasks.find_by_calendar_event(notification.external_event_id)
        if not affected:
            logger.info("No affected tasks found for calendar change")
            return None

        self.state = RescheduleState.IN_PROGRESS
        return await self._run_pass(affected, RescheduleTrigger.CALENDAR_CHANGE, None, None)

    async def _run_pass(
        self,
        tasks: List[Task],
        trigger: RescheduleTrigger,
        working_hours: Optional[WorkingHours],
        buffer_minutes: Optional[int],
    ) -> ReschedulingEvent:
        hours = working_hours or self.working_hours
        buffer = self.buffer_minutes if buffer_minutes is None else buffer_minutes
        try:
            event = await self._reschedule(tasks, trigger, hours, buffer)
        except Exception:
            self.state = RescheduleState.FAILED
            raise
        self.state = RescheduleState.COMPLETED
        self._notify_listeners(event)
        return event

    async def _reschedule(
        self,
        tasks: List[Task],
        trigger: RescheduleTrigger,
        working_hours: WorkingHours,
        buffer_minutes: int,
    ) -> ReschedulingEvent:
        logger.info(f"Rescheduling {len(tasks)} affected tasks")
        changes: List[ScheduleChange] = []
        rescheduled: Dict[str, AllocationResult] = {}

        for task in tasks:
            try:
                allocation = await self._allocate_with_relaxation(task, working_hours, buffer_minutes)
            except Exception as e:
                logger.error(f"Failed to reschedule task {task.id}: {type(e).__name__}: {str(e)}")
                continue
            if allocation is None:
                logger.warning(f"Cannot reschedule task {task.id} even with relaxed constraints, keeping prior schedule")
                continue

            old_schedule = task.schedule_window()
            new_schedule = ScheduleWindow(
                start=allocation.blocks[0].start_time,
                end=allocation.blocks[-1].end_time,
            )
            if old_schedule != new_schedule:
                changes.append(ScheduleChange(
                    task_id=task.id,
                    old_schedule=old_schedule,
                    new_schedule=new_schedule,
                ))
            rescheduled[task.id] = allocation

        event = ReschedulingEvent(
            id=str(uuid.uuid4()),
            trigger=trigger,
            affected_task_ids=[t.id for t in tasks],
            timestamp=self.clock(),
            changes=changes,
        )

        updated: List[Task] = []
        for task in tasks:
            allocation = rescheduled.get(task.id)
            if allocation is None:
                continue
            task.scheduled_blocks = allocation.blocks
            task.scheduled_start = allocation.blocks[0].start_time
            task.scheduled_end = allocation.blocks[-1].end_time
            task.last_rescheduled = event.timestamp
            # Per-task history keeps the most recent events only
            task.rescheduling_history = (task.rescheduling_history + [event])[-self.history_cap:]
            updated.append(task)

        if self.tasks is not None:
            self.tasks.update_many(updated)
        self.events.append(event)
        logger.info(f"Rescheduling event {event.id}: {len(updated)} rescheduled, {len(changes)} changed")
        return event

    async def _allocate_with_relaxation(
        self, task: Task, working_hours: WorkingHours, buffer_minutes: int
    ) -> Optional[AllocationResult]:
        """Strict allocation, then the relaxation ladder. None if every attempt fails."""
        estimation = self.estimator.estimate(task)
        try:
            return await self.allocator.allocate(task, estimation, working_hours, buffer_minutes)
        except CapacityExceeded as e:
            logger.warning(f"Cannot reschedule task {task.id} strictly: {e}")

        policy = self.relaxation
        attempts = [
            (
                "extended deadline",
                estimation,
                buffer_minutes,
                task.deadline + timedelta(days=policy.deadline_extension_days),
            ),
            (
                "reduced buffer time",
                estimation,
                max(policy.min_buffer_minutes, int(buffer_minutes * policy.buffer_reduction_factor)),
                None,
            ),
            (
                "reduced duration",
                reduce_estimation(estimation, policy.duration_reduction_factor),
                buffer_minutes,
                None,
            ),
        ]
        for label, relaxed_estimation, relaxed_buffer, deadline in attempts:
            if relaxed_estimation.total == 0:
                continue
            try:
                allocation = await self.allocator.allocate(
                    task, relaxed_estimation, working_hours, relaxed_buffer, deadline=deadline
                )
            except CapacityExceeded as e:
                logger.info(f"Relaxed scheduling ({label}) failed for task {task.id}: {e}")
                continue
            logger.info(f"Successfully scheduled task {task.id} with {label}")
            return allocation
        return None

    async def check_rescheduling_needed(self, task: Task) -> bool:
        """True when any stored block of `task` now overlaps something busy."""
        if not task.scheduled_blocks or self.provider is None:
            return False
        for block in task.scheduled_blocks:
            if not await self.provider.is_slot_free(block.start_time, block.end_time, exclude_task_id=task.id):
                return True
        return False
