"""FastAPI web application for FamilyTasks."""

import logging
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from familytasks.api.dependencies import SchedulingServices, get_services
from familytasks.engine.calendar_sync import mirror_task_blocks
from familytasks.engine.errors import CapacityExceeded, InvalidEstimation, MissingDeadline, ProviderUnavailable
from familytasks.models.calendar import CalendarChangeNotification
from familytasks.models.estimation import Estimation, ActualTime
from familytasks.models.learning import LearningInsights, LearningRecord
from familytasks.models.rescheduling_event import ReschedulingEvent, RescheduleTrigger
from familytasks.models.scheduled_block import ScheduledBlock
from familytasks.models.task import Task, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="FamilyTasks API",
    description="Places focused phase work blocks for tasks with deadlines into your calendar",
    version="0.1.0"
)


# Request models
class TaskCreateRequest(BaseModel):
    """Request body for task creation."""
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    project: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    priority: TaskPriority = TaskPriority.NORMAL
    deadline: Optional[datetime] = None
    notification_at: Optional[datetime] = None


class TaskUpdateRequest(BaseModel):
    """Request body for task edits; omitted fields are left unchanged."""
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    deadline: Optional[datetime] = None


# Response models
class ScheduleTaskResponse(BaseModel):
    """Response for scheduling a single task."""
    task_id: str
    estimation: Estimation
    scheduled_blocks: List[ScheduledBlock]
    degraded_days: List[date] = Field(default_factory=list, description="Days assumed free after calendar errors")
    mirror_failed_block_ids: List[str] = Field(default_factory=list)


class RescheduleResponse(BaseModel):
    """Response for a rescheduling trigger."""
    skipped: bool = Field(..., description="True when nothing was rescheduled (busy or no affected tasks)")
    event: Optional[ReschedulingEvent] = None
    mirror_failed_block_ids: Dict[str, List[str]] = Field(default_factory=dict)


class TaskUpdateResponse(BaseModel):
    """Response for task edits."""
    task: Task
    rescheduling_event: Optional[ReschedulingEvent] = None


def _get_task_or_404(services: SchedulingServices, task_id: str) -> Task:
    task = services.tasks.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return task


async def _mirror_rescheduled(
    services: SchedulingServices, previous_blocks: Dict[str, List[ScheduledBlock]]
) -> Dict[str, List[str]]:
    """Mirror tasks whose blocks were replaced by a rescheduling pass."""
    failures: Dict[str, List[str]] = {}
    for task_id, previous in previous_blocks.items():
        task = services.tasks.get(task_id)
        if task is None or {b.id for b in task.scheduled_blocks} == {b.id for b in previous}:
            continue
        result = await mirror_task_blocks(services.provider, task, previous)
        services.tasks.update(task)
        if result.failed_block_ids:
            failures[task_id] = result.failed_block_ids
    return failures


async def _reschedule(
    services: SchedulingServices, tasks: List[Task], trigger: RescheduleTrigger
) -> RescheduleResponse:
    previous = {t.id: list(t.scheduled_blocks) for t in tasks}
    event = await services.rescheduler.reschedule_affected(tasks, trigger)
    if event is None:
        return RescheduleResponse(skipped=True)
    failures = await _mirror_rescheduled(services, previous)
    return RescheduleResponse(skipped=False, event=event, mirror_failed_block_ids=failures)


@app.post("/tasks", response_model=Task, status_code=201)
async def create_task(request: TaskCreateRequest, services: SchedulingServices = Depends(get_services)):
    """Create a task."""
    now = services.clock()
    task = Task(id=str(uuid.uuid4()), created_at=now, updated_at=now, **request.model_dump())
    return services.tasks.create(task)


@app.get("/tasks", response_model=List[Task])
async def list_tasks(services: SchedulingServices = Depends(get_services)):
    """List tasks, newest first."""
    return services.tasks.get_all()


@app.get("/tasks/{task_id}", response_model=Task)
async def get_task(task_id: str, services: SchedulingServices = Depends(get_services)):
    return _get_task_or_404(services, task_id)


@app.patch("/tasks/{task_id}", response_model=TaskUpdateResponse)
async def update_task(
    task_id: str,
    request: TaskUpdateRequest,
    services: SchedulingServices = Depends(get_services),
):
    """Edit a task; scheduled, unfinished tasks are rescheduled with trigger `task_update`."""
    task = _get_task_or_404(services, task_id)
    for field, value in request.model_dump(exclude_unset=True).items():
        # Only the deadline may be cleared explicitly
        if value is None and field != "deadline":
            continue
        setattr(task, field, value)
    task.updated_at = services.clock()
    services.tasks.update(task)

    event = None
    if task.scheduled_blocks and task.deadline and task.status != TaskStatus.DONE.value:
        response = await _reschedule(services, [task], RescheduleTrigger.TASK_UPDATE)
        event = response.event
        task = services.tasks.get(task_id)
    return TaskUpdateResponse(task=task, rescheduling_event=event)


@app.get("/tasks/{task_id}/estimate", response_model=Estimation)
async def estimate_task(task_id: str, services: SchedulingServices = Depends(get_services)):
    """Learning-adjusted estimation for a task."""
    return services.learning.improved_estimate(_get_task_or_404(services, task_id))


@app.post("/tasks/{task_id}/schedule", response_model=ScheduleTaskResponse)
async def schedule_task(task_id: str, services: SchedulingServices = Depends(get_services)):
    """Estimate, allocate and mirror one task's phase blocks."""
    task = _get_task_or_404(services, task_id)
    settings = services.settings
    estimation = services.learning.improved_estimate(task)

    try:
        allocation = await services.allocator.allocate(
            task, estimation, settings.working_hours, settings.buffer_minutes
        )
    except (MissingDeadline, InvalidEstimation) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CapacityExceeded as e:
        raise HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "required_minutes": e.required_minutes,
                "available_minutes": e.available_minutes,
                "shortfall_minutes": e.shortfall_minutes,
            },
        )

    previous = list(task.scheduled_blocks)
    task.estimation = estimation
    task.scheduled_blocks = allocation.blocks
    task.scheduled_start = allocation.blocks[0].start_time
    task.scheduled_end = allocation.blocks[-1].end_time
    task.updated_at = services.clock()

    mirror = await mirror_task_blocks(services.provider, task, previous)
    services.tasks.update(task)

    return ScheduleTaskResponse(
        task_id=task.id,
        estimation=estimation,
        scheduled_blocks=task.scheduled_blocks,
        degraded_days=allocation.degraded_days,
        mirror_failed_block_ids=mirror.failed_block_ids,
    )


@app.post("/tasks/{task_id}/actual-time", response_model=LearningRecord)
async def record_actual_time(
    task_id: str,
    actual_time: ActualTime,
    services: SchedulingServices = Depends(get_services),
):
    """Record observed phase minutes for a task and update learned statistics."""
    task = _get_task_or_404(services, task_id)
    record = services.learning.record_actual(task, actual_time)
    services.tasks.update(task)
    return record


@app.get("/learning/insights", response_model=LearningInsights)
async def learning_insights(services: SchedulingServices = Depends(get_services)):
    return services.learning.insights()


@app.post("/reschedule", response_model=RescheduleResponse)
async def reschedule_all(services: SchedulingServices = Depends(get_services)):
    """Manually reschedule every unfinished task with a deadline."""
    tasks = services.tasks.get_schedulable()
    if not tasks:
        return RescheduleResponse(skipped=True)
    return await _reschedule(services, tasks, RescheduleTrigger.MANUAL_ADJUSTMENT)


@app.get("/rescheduling/history", response_model=List[ReschedulingEvent])
async def rescheduling_history(services: SchedulingServices = Depends(get_services)):
    return services.rescheduler.history()


@app.post("/webhooks/calendar", response_model=RescheduleResponse)
async def calendar_webhook(
    notification: CalendarChangeNotification,
    services: SchedulingServices = Depends(get_services),
):
    """Change-signal entry point for calendar push notifications or pollers."""
    affected = services.tasks.find_by_calendar_event(notification.external_event_id)
    previous = {t.id: list(t.scheduled_blocks) for t in affected}
    try:
        event = await services.rescheduler.handle_external_change(notification)
    except ProviderUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))
    if event is None:
        return RescheduleResponse(skipped=True)
    failures = await _mirror_rescheduled(services, previous)
    return RescheduleResponse(skipped=False, event=event, mirror_failed_block_ids=failures)
