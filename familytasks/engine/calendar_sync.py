"""Mirroring of scheduled blocks to the calendar provider."""

import logging
from typing import List, Optional

from familytasks.engine.errors import ProviderUnavailable
from familytasks.integrations.calendar_provider import CalendarProvider
from familytasks.models.scheduled_block import ScheduledBlock
from familytasks.models.task import Task

logger = logging.getLogger(__name__)


class MirrorResult:
    """Outcome of mirroring one task's blocks."""

    def __init__(self):
        self.created_event_ids: List[str] = []
        self.deleted_event_ids: List[str] = []
        self.failed_block_ids: List[str] = []
        self.errors: List[str] = []

    @property
    def ok(self) -> bool:
        return not self.failed_block_ids and not self.errors


async def mirror_task_blocks(
    provider: CalendarProvider,
    task: Task,
    previous_blocks: Optional[List[ScheduledBlock]] = None,
) -> MirrorResult:
    """Replace the provider events of `previous_blocks` with events for `task.scheduled_blocks`.

    A failed event creation only affects its own block; the block keeps no
    provider event ID and is reported in `failed_block_ids`.
    """
    result = MirrorResult()
    current_ids = {b.id for b in task.scheduled_blocks}

    for block in previous_blocks or []:
        if not block.calendar_event_id or block.id in current_ids:
            continue
        try:
            await provider.delete_event(block.calendar_event_id)
            result.deleted_event_ids.append(block.calendar_event_id)
        except ProviderUnavailable as e:
            logger.error(f"Failed to delete calendar event {block.calendar_event_id} for task {task.id}: {e}")
            result.errors.append(str(e))

    for block in task.scheduled_blocks:
        if block.calendar_event_id:
            continue
        try:
            block.calendar_event_id = await provider.create_event(block, task.title)
            result.created_event_ids.append(block.calendar_event_id)
        except ProviderUnavailable as e:
            logger.error(f"Failed to mirror block {block.id} of task {task.id}: {e}")
            result.failed_block_ids.append(block.id)
            result.errors.append(str(e))

    logger.info(
        f"Mirrored task {task.id}: {len(result.created_event_ids)} created, "
        f"{len(result.deleted_event_ids)} deleted, {len(result.failed_block_ids)} failed"
    )
    return result
