"""Phase allocation for FamilyTasks.

Places a task's phase work into free calendar slots before its deadline:
- Earliest slot first, so work is front-loaded relative to the deadline
- Phases are placed strictly in order (incubation -> design -> implementation -> improvement)
- A phase may be split across several blocks
- Each block is followed by a buffer before the next block in the same slot
- A slot is abandoned once less than the minimum block size remains
"""

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from familytasks.engine.availability import AvailabilityFinder
from familytasks.engine.errors import CapacityExceeded, InvalidEstimation, MissingDeadline
from familytasks.models.task import Task
from familytasks.models.estimation import Estimation
from familytasks.models.scheduled_block import ScheduledBlock, PHASE_ORDER
from familytasks.models.working_hours import WorkingHours
from familytasks.models.constants import MIN_BLOCK_MINUTES

logger = logging.getLogger(__name__)


class AllocationResult:
    """Result of allocating one task."""

    def __init__(self):
        self.blocks: List[ScheduledBlock] = []
        self.degraded_days: List[date] = []
        self.available_minutes: int = 0


def round_up_to_minute(dt: datetime) -> datetime:
    """Round datetime up to the next whole minute (unchanged if already whole)."""
    if dt.second == 0 and dt.microsecond == 0:
        return dt
    return dt.replace(second=0, microsecond=0) + timedelta(minutes=1)


def check_estimation(task_id: str, estimation: Estimation) -> None:
    if not estimation.is_consistent():
        raise InvalidEstimation(task_id, estimation.phase_sum(), estimation.total)


class PhaseAllocator:
    """Greedy, deterministic placement of phase blocks into free slots."""

    def __init__(
        self,
        finder: AvailabilityFinder,
        clock: Callable[[], datetime] = datetime.now,
        min_block_minutes: int = MIN_BLOCK_MINUTES,
    ):
        self.finder = finder
        self.clock = clock
        self.min_block_minutes = min_block_minutes

    async def allocate(
        self,
        task: Task,
        estimation: Estimation,
        working_hours: WorkingHours,
        buffer_minutes: int,
        deadline: Optional[datetime] = None,
    ) -> AllocationResult:
        """Allocate blocks for `task` between now and its deadline.

        Args:
            task: Task to schedule
            estimation: Phase breakdown to place
            working_hours: Per-weekday working windows
            buffer_minutes: Gap kept around busy intervals and between blocks
            deadline: Overrides `task.deadline` (used by relaxed retries)

        Returns:
            AllocationResult with blocks in chronological (and phase) order

        Raises:
            MissingDeadline: If neither `deadline` nor `task.deadline` is set
            InvalidEstimation: If the phase minutes do not sum to the total
            CapacityExceeded: If the free time runs out before every phase is placed
        """
        deadline = deadline or task.deadline
        if deadline is None:
            raise MissingDeadline(task.id)
        check_estimation(task.id, estimation)

        # [phase, remaining minutes], zero-length phases skipped
        remaining = [
            [phase, estimation.minutes_for(phase)]
            for phase in PHASE_ORDER
            if estimation.minutes_for(phase) > 0
        ]

        now = round_up_to_minute(self.clock())
        availability = await self.finder.find_free_slots(
            now, deadline, working_hours, buffer_minutes, exclude_task_id=task.id
        )

        result = AllocationResult()
        result.degraded_days = list(availability.degraded_days)
        result.available_minutes = availability.total_minutes

        for slot in availability.slots:
            if not remaining:
                break

            cursor = slot.start
            slot_remaining = slot.duration_minutes

            while remaining and slot_remaining >= self.min_block_minutes:
                phase, phase_remaining = remaining[0]
                minutes = min(slot_remaining, phase_remaining)
                block_end = cursor + timedelta(minutes=minutes)

                result.blocks.append(ScheduledBlock(
                    id=str(uuid.uuid4()),
                    task_id=task.id,
                    phase=phase,
                    start_time=cursor,
                    end_time=block_end,
                ))

                remaining[0][1] -= minutes
                if remaining[0][1] <= 0:
                    remaining.pop(0)

                cursor = block_end + timedelta(minutes=buffer_minutes)
                slot_remaining -= minutes + buffer_minutes

        if remaining:
            required = sum(minutes for _, minutes in remaining)
            logger.warning(
                f"Scheduling constraint violation for task {task.id}: "
                f"{len(remaining)} phases ({required} min) unplaced, "
                f"{result.available_minutes} min available before {deadline.isoformat()}"
            )
            raise CapacityExceeded(task.id, required, result.available_minutes)

        logger.info(f"Allocated {len(result.blocks)} blocks for task {task.id}")
        return result
