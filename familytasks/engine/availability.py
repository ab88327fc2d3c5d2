"""Free-time search over calendar busy data for FamilyTasks.

Walks each calendar day in a range, intersects the day's working window with
the range, and turns the gaps between busy intervals into free slots.
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from familytasks.engine.errors import ProviderUnavailable
from familytasks.integrations.calendar_provider import CalendarProvider
from familytasks.models.working_hours import WorkingHours
from familytasks.models.constants import MIN_SLOT_MINUTES, DEFAULT_CALENDAR_ID

logger = logging.getLogger(__name__)


def _minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


class TimeSlot:
    """A contiguous free interval within working hours."""

    def __init__(self, start: datetime, end: datetime):
        self.start = start
        self.end = end
        self.duration_minutes = _minutes_between(start, end)

    def __eq__(self, other):
        return isinstance(other, TimeSlot) and (self.start, self.end) == (other.start, other.end)

    def __repr__(self):
        return f"TimeSlot({self.start.isoformat()} -> {self.end.isoformat()}, {self.duration_minutes} min)"


class AvailabilityResult:
    """Result of a free-slot search."""

    def __init__(self):
        self.slots: List[TimeSlot] = []
        # Days whose provider query failed and were assumed fully free
        self.degraded_days: List[date] = []

    @property
    def total_minutes(self) -> int:
        return sum(slot.duration_minutes for slot in self.slots)


class AvailabilityFinder:
    """Finds free slots in a calendar within working hours."""

    def __init__(
        self,
        provider: CalendarProvider,
        calendar_id: str = DEFAULT_CALENDAR_ID,
        min_slot_minutes: int = MIN_SLOT_MINUTES,
    ):
        self.provider = provider
        self.calendar_id = calendar_id
        self.min_slot_minutes = min_slot_minutes

    async def find_free_slots(
        self,
        range_start: datetime,
        range_end: datetime,
        working_hours: WorkingHours,
        buffer_minutes: int,
        exclude_task_id: Optional[str] = None,
    ) -> AvailabilityResult:
        """Free slots in [range_start, range_end], chronologically ascending.

        Days are queried one at a time, in order. Blocks already mirrored for
        `exclude_task_id` do not count as busy.
        """
        result = AvailabilityResult()
        current_day = range_start.date()

        while current_day <= range_end.date():
            hours = working_hours.for_date(current_day)
            if hours.enabled:
                window_start = max(datetime.combine(current_day, hours.start), range_start)
                window_end = min(datetime.combine(current_day, hours.end), range_end)
                if window_start < window_end:
                    await self._add_day_slots(
                        result, current_day, window_start, window_end, buffer_minutes, exclude_task_id
                    )
            current_day += timedelta(days=1)

        return result

    async def _add_day_slots(
        self,
        result: AvailabilityResult,
        day: date,
        window_start: datetime,
        window_end: datetime,
        buffer_minutes: int,
        exclude_task_id: Optional[str],
    ) -> None:
        try:
            busy = await self.provider.list_busy_intervals(
                self.calendar_id, window_start, window_end, exclude_task_id=exclude_task_id
            )
        except ProviderUnavailable as e:
            logger.warning(
                f"Calendar query failed for {day.isoformat()}, assuming the whole working window is free: {e}"
            )
            result.degraded_days.append(day)
            self._add_slot(result, window_start, window_end)
            return

        buffer = timedelta(minutes=buffer_minutes)
        cursor = window_start
        for interval in sorted(busy, key=lambda b: b.start):
            if cursor < interval.start:
                self._add_slot(result, cursor, min(interval.start - buffer, window_end))
            cursor = max(cursor, interval.end + buffer)
            if cursor >= window_end:
                return

        self._add_slot(result, cursor, window_end)

    def _add_slot(self, result: AvailabilityResult, start: datetime, end: datetime) -> None:
        if end > start and _minutes_between(start, end) >= self.min_slot_minutes:
            result.slots.append(TimeSlot(start, end))
