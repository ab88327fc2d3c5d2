"""Repository layer for task and rescheduling-history persistence."""

import json
import logging
from typing import Dict, List, Optional

from familytasks.models.task import Task, TaskStatus
from familytasks.models.rescheduling_event import ReschedulingEvent
from familytasks.models.constants import RESCHEDULING_HISTORY_CAP
from familytasks.database.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

TASKS_KEY = "familytasks_tasks"
RESCHEDULING_EVENTS_KEY = "familytasks_rescheduling_events"


class TaskRepository:
    """Repository for Task persistence."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _load_all(self) -> Dict[str, Task]:
        blob = self.store.load(TASKS_KEY)
        if not blob:
            return {}
        return {item["id"]: Task.model_validate(item) for item in json.loads(blob)}

    def _save_all(self, tasks: Dict[str, Task]) -> None:
        payload = [task.model_dump(mode="json") for task in tasks.values()]
        self.store.save(TASKS_KEY, json.dumps(payload))

    def create(self, task: Task) -> Task:
        """Create a new task."""
        tasks = self._load_all()
        if task.id in tasks:
            raise ValueError(f"Task {task.id} already exists")
        tasks[task.id] = task
        self._save_all(tasks)
        logger.debug(f"Created task {task.id}: {task.title[:50]}")
        return task

    def get(self, task_id: str) -> Optional[Task]:
        """Get task by ID."""
        return self._load_all().get(task_id)

    def get_all(self) -> List[Task]:
        """Get all tasks sorted by creation date (newest first)."""
        return sorted(self._load_all().values(), key=lambda t: t.created_at, reverse=True)

    def get_schedulable(self) -> List[Task]:
        """Tasks with a deadline that are not done."""
        return [
            t for t in self.get_all()
            if t.deadline is not None and t.status != TaskStatus.DONE.value
        ]

    def find_by_calendar_event(self, calendar_event_id: str) -> List[Task]:
        """Non-done tasks with a stored block mirrored as `calendar_event_id`."""
        return [
            t for t in self.get_all()
            if t.status != TaskStatus.DONE.value and t.references_calendar_event(calendar_event_id)
        ]

    def update(self, task: Task) -> Task:
        """Update an existing task."""
        tasks = self._load_all()
        if task.id not in tasks:
            raise ValueError(f"Task {task.id} not found")
        tasks[task.id] = task
        self._save_all(tasks)
        logger.debug(f"Updated task {task.id}")
        return task

    def update_many(self, updated: List[Task]) -> None:
        """Persist several tasks with a single write."""
        if not updated:
            return
        tasks = self._load_all()
        for task in updated:
            tasks[task.id] = task
        self._save_all(tasks)
        logger.debug(f"Updated {len(updated)} tasks")

    def delete(self, task_id: str) -> bool:
        tasks = self._load_all()
        if tasks.pop(task_id, None) is None:
            return False
        self._save_all(tasks)
        return True


class ReschedulingEventRepository:
    """Capped, append-only history of rescheduling events (oldest dropped first)."""

    def __init__(self, store: KeyValueStore, cap: int = RESCHEDULING_HISTORY_CAP):
        self.store = store
        self.cap = cap

    def get_all(self) -> List[ReschedulingEvent]:
        blob = self.store.load(RESCHEDULING_EVENTS_KEY)
        if not blob:
            return []
        return [ReschedulingEvent.model_validate(item) for item in json.loads(blob)]

    def append(self, event: ReschedulingEvent) -> None:
        events = self.get_all()
        events.append(event)
        if len(events) > self.cap:
            events = events[-self.cap:]
        self.store.save(
            RESCHEDULING_EVENTS_KEY,
            json.dumps([e.model_dump(mode="json") for e in events]),
        )
        logger.debug(f"Recorded rescheduling event {event.id} ({len(event.changes)} changes)")
