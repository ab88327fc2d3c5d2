"""Service wiring for the FamilyTasks API.

Everything the routes need is built once into a SchedulingServices container
owned by the application; tests swap it via `app.dependency_overrides`.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from familytasks.config import Settings, load_settings
from familytasks.database.database import SessionLocal, init_db
from familytasks.database.kv_store import KeyValueStore, SqlKeyValueStore
from familytasks.database.repository import TaskRepository, ReschedulingEventRepository
from familytasks.engine.availability import AvailabilityFinder
from familytasks.engine.learning import LearningStore
from familytasks.engine.rescheduler import Rescheduler
from familytasks.engine.scheduler import PhaseAllocator
from familytasks.integrations.calendar_provider import CalendarProvider

logger = logging.getLogger(__name__)


class SchedulingServices:
    """Composition root for the scheduling core."""

    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        provider: CalendarProvider,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings
        self.provider = provider
        self.clock = clock
        self.tasks = TaskRepository(store)
        self.learning = LearningStore(store, history_cap=settings.learning_history_cap, clock=clock)
        self.finder = AvailabilityFinder(provider, calendar_id=settings.calendar_id)
        self.allocator = PhaseAllocator(self.finder, clock=clock)
        self.rescheduler = Rescheduler(
            estimator=self.learning.estimator,
            allocator=self.allocator,
            events=ReschedulingEventRepository(store, cap=settings.rescheduling_history_cap),
            tasks=self.tasks,
            provider=provider,
            working_hours=settings.working_hours,
            buffer_minutes=settings.buffer_minutes,
            relaxation=settings.relaxation,
            history_cap=settings.rescheduling_history_cap,
            clock=clock,
        )


_services: Optional[SchedulingServices] = None


def build_default_services() -> SchedulingServices:
    """SQLite-backed store and Google Calendar provider from environment settings."""
    from familytasks.integrations.google_calendar import GoogleCalendarProvider

    settings = load_settings()
    init_db()
    provider = GoogleCalendarProvider(
        credentials_path=settings.credentials_path,
        calendar_id=settings.calendar_id,
        token_path=settings.token_path,
        time_zone=settings.timezone,
    )
    logger.info(f"Scheduling services ready (calendar {settings.calendar_id}, tz {settings.timezone})")
    return SchedulingServices(settings, SqlKeyValueStore(SessionLocal), provider)


def get_services() -> SchedulingServices:
    """FastAPI dependency returning the application's services."""
    global _services
    if _services is None:
        _services = build_default_services()
    return _services
