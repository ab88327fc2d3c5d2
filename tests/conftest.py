"""Pytest fixtures and configuration for FamilyTasks tests."""

import pytest
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set
import uuid

from fastapi.testclient import TestClient

from familytasks.api.app import app
from familytasks.api.dependencies import SchedulingServices, get_services
from familytasks.config import Settings
from familytasks.database.kv_store import MemoryKeyValueStore
from familytasks.database.repository import TaskRepository, ReschedulingEventRepository
from familytasks.engine.availability import AvailabilityFinder
from familytasks.engine.errors import ProviderUnavailable
from familytasks.engine.estimator import Estimator
from familytasks.engine.learning import LearningStore
from familytasks.engine.rescheduler import Rescheduler
from familytasks.engine.scheduler import PhaseAllocator
from familytasks.integrations.calendar_provider import CalendarProvider
from familytasks.models.calendar import BusyInterval
from familytasks.models.scheduled_block import ScheduledBlock
from familytasks.models.task import Task, TaskStatus, TaskPriority
from familytasks.models.working_hours import WorkingHours


# Monday 2024-01-01 10:00
NOW = datetime(2024, 1, 1, 10, 0, 0)


class FakeCalendarProvider(CalendarProvider):
    """In-memory calendar provider.

    `busy` intervals and the events created through `create_event` are
    returned when they overlap the queried range, except events of the
    excluded task; dates in `failing_days` raise ProviderUnavailable;
    `fail_create_for` block IDs (or all blocks when `fail_all_creates`) fail
    on create_event.
    """

    def __init__(self, busy: Optional[List[BusyInterval]] = None):
        self.busy: List[BusyInterval] = list(busy or [])
        self.failing_days: Set = set()
        self.fail_create_for: Set[str] = set()
        self.fail_all_creates = False
        self.queries: List[tuple] = []
        self.created: Dict[str, ScheduledBlock] = {}
        self.deleted: List[str] = []
        self._next_event = 0

    def add_busy(self, start: datetime, end: datetime) -> None:
        self.busy.append(BusyInterval(start=start, end=end))

    def _intervals(self, exclude_task_id):
        mirrored = [
            BusyInterval(start=b.start_time, end=b.end_time, task_id=b.task_id)
            for b in self.created.values()
        ]
        return [
            b for b in self.busy + mirrored
            if exclude_task_id is None or b.task_id != exclude_task_id
        ]

    async def list_busy_intervals(self, calendar_id, range_start, range_end, exclude_task_id=None):
        self.queries.append((calendar_id, range_start, range_end))
        if range_start.date() in self.failing_days:
            raise ProviderUnavailable(f"calendar unavailable on {range_start.date()}")
        return [b for b in self._intervals(exclude_task_id) if b.start < range_end and b.end > range_start]

    async def create_event(self, block, task_title):
        if self.fail_all_creates or block.id in self.fail_create_for:
            raise ProviderUnavailable("create failed", operation="create calendar event")
        self._next_event += 1
        event_id = f"evt-{self._next_event}"
        self.created[event_id] = block
        return event_id

    async def update_event(self, event_id, block, task_title):
        self.created[event_id] = block

    async def delete_event(self, event_id):
        self.deleted.append(event_id)
        self.created.pop(event_id, None)

    async def is_slot_free(self, start, end, exclude_task_id=None):
        return not any(b.start < end and b.end > start for b in self._intervals(exclude_task_id))


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def working_hours():
    """Weekdays 09:00-18:00, weekends disabled."""
    return WorkingHours.default()


@pytest.fixture
def provider():
    return FakeCalendarProvider()


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def task_repository(kv_store):
    return TaskRepository(kv_store)


@pytest.fixture
def event_repository(kv_store):
    return ReschedulingEventRepository(kv_store)


@pytest.fixture
def learning_store(kv_store, clock):
    return LearningStore(kv_store, clock=clock)


@pytest.fixture
def estimator():
    """Estimator without learned statistics."""
    return Estimator()


@pytest.fixture
def finder(provider):
    return AvailabilityFinder(provider)


@pytest.fixture
def allocator(finder, clock):
    return PhaseAllocator(finder, clock=clock)


@pytest.fixture
def rescheduler(estimator, allocator, event_repository, task_repository, provider, working_hours, clock):
    return Rescheduler(
        estimator=estimator,
        allocator=allocator,
        events=event_repository,
        tasks=task_repository,
        provider=provider,
        working_hours=working_hours,
        buffer_minutes=15,
        clock=clock,
    )


@pytest.fixture
def sample_task_base(now):
    """Base task data for creating test tasks.

    Returns a dict with default task attributes that can be overridden.
    """
    return {
        "id": str(uuid.uuid4()),
        "title": "Write quarterly plan",
        "description": "Test description",
        "status": TaskStatus.TODO,
        "project": None,
        "keywords": [],
        "priority": TaskPriority.NORMAL,
        "deadline": now + timedelta(hours=3),
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def sample_task(sample_task_base):
    """Normal-priority task due three hours from now."""
    return Task(**sample_task_base)


@pytest.fixture
def settings(working_hours):
    return Settings(working_hours=working_hours, buffer_minutes=15)


@pytest.fixture
def services(settings, kv_store, provider, clock):
    """Scheduling services over the in-memory store and fake calendar."""
    return SchedulingServices(settings, kv_store, provider, clock=clock)


@pytest.fixture
def test_client(services):
    """Create a test client with the services dependency overridden."""
    app.dependency_overrides[get_services] = lambda: services
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
