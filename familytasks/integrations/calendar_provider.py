"""Calendar provider contract consumed by the scheduling core."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from familytasks.models.calendar import BusyInterval
from familytasks.models.scheduled_block import ScheduledBlock


class CalendarProvider(ABC):
    """Async calendar backend.

    Implementations raise `ProviderUnavailable` for any backend failure.
    """

    @abstractmethod
    async def list_busy_intervals(
        self,
        calendar_id: str,
        range_start: datetime,
        range_end: datetime,
        exclude_task_id: Optional[str] = None,
    ) -> List[BusyInterval]:
        """Busy intervals overlapping [range_start, range_end].

        Events mirroring blocks of `exclude_task_id` are left out; blocks of
        every other task stay busy.
        """

    @abstractmethod
    async def create_event(self, block: ScheduledBlock, task_title: str) -> str:
        """Mirror a block as a calendar event and return the provider event ID."""

    @abstractmethod
    async def update_event(self, event_id: str, block: ScheduledBlock, task_title: str) -> None:
        """Move/rename an existing provider event to match `block`."""

    @abstractmethod
    async def delete_event(self, event_id: str) -> None:
        """Remove a provider event."""

    @abstractmethod
    async def is_slot_free(self, start: datetime, end: datetime, exclude_task_id: Optional[str] = None) -> bool:
        """True when nothing busy (other than `exclude_task_id`'s own blocks) overlaps [start, end)."""
