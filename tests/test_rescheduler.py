"""Tests for the rescheduling engine."""

import asyncio
import pytest
from datetime import datetime, timedelta
import uuid

from familytasks.config import RelaxationPolicy
from familytasks.database.repository import ReschedulingEventRepository
from familytasks.engine.availability import AvailabilityFinder
from familytasks.engine.errors import CapacityExceeded
from familytasks.engine.scheduler import PhaseAllocator
from familytasks.engine.rescheduler import Rescheduler, RescheduleState
from familytasks.models.calendar import BusyInterval, CalendarChangeNotification, ChangeKind
from familytasks.models.rescheduling_event import RescheduleTrigger, ScheduleWindow
from familytasks.models.scheduled_block import ScheduledBlock
from familytasks.models.task import Task


def _at(hour, minute=0, day=1):
    return datetime(2024, 1, day, hour, minute)


def _block(task_id, phase, start, end, event_id=None):
    return ScheduledBlock(
        id=str(uuid.uuid4()),
        task_id=task_id,
        phase=phase,
        start_time=start,
        end_time=end,
        calendar_event_id=event_id,
    )


def _scheduled_task(sample_task_base, **overrides):
    """Task already holding a 10:00-10:40 schedule with one mirrored block."""
    task = Task(**{**sample_task_base, **overrides})
    task.scheduled_blocks = [
        _block(task.id, "incubation", _at(10), _at(10, 10), event_id="evt-old"),
        _block(task.id, "design", _at(10, 25), _at(10, 40)),
    ]
    task.scheduled_start = _at(10)
    task.scheduled_end = _at(10, 40)
    return task


def _make_rescheduler(rescheduler, **overrides):
    """Copy of the fixture rescheduler with some constructor arguments replaced."""
    kwargs = dict(
        estimator=rescheduler.estimator,
        allocator=rescheduler.allocator,
        events=rescheduler.events,
        tasks=rescheduler.tasks,
        provider=rescheduler.provider,
        working_hours=rescheduler.working_hours,
        buffer_minutes=rescheduler.buffer_minutes,
        clock=rescheduler.clock,
    )
    kwargs.update(overrides)
    return Rescheduler(**kwargs)


class TestRescheduleAffected:
    """reschedule_affected() results and bookkeeping."""

    def test_unscheduled_task_gets_schedule(self, rescheduler, task_repository, sample_task, now):
        task_repository.create(sample_task)

        event = asyncio.run(rescheduler.reschedule_affected([sample_task], RescheduleTrigger.MANUAL_ADJUSTMENT))

        assert event.trigger == "manual_adjustment"
        assert event.affected_task_ids == [sample_task.id]
        assert event.timestamp == now
        assert len(event.changes) == 1
        assert event.changes[0].old_schedule is None
        assert event.changes[0].new_schedule == ScheduleWindow(start=_at(10), end=_at(11, 45))

        stored = task_repository.get(sample_task.id)
        assert stored.scheduled_start == _at(10)
        assert stored.scheduled_end == _at(11, 45)
        assert stored.last_rescheduled == now
        assert [e.id for e in stored.rescheduling_history] == [event.id]
        assert rescheduler.state == RescheduleState.COMPLETED

    def test_second_pass_without_changes_is_empty(self, rescheduler, task_repository, sample_task):
        """Rescheduling an unchanged schedule under unchanged conditions moves nothing."""
        task_repository.create(sample_task)
        asyncio.run(rescheduler.reschedule_affected([sample_task], RescheduleTrigger.MANUAL_ADJUSTMENT))

        event = asyncio.run(rescheduler.reschedule_affected([sample_task], RescheduleTrigger.MANUAL_ADJUSTMENT))

        assert event.changes == []
        assert event.affected_task_ids == [sample_task.id]
        assert len(rescheduler.history()) == 2

    def test_moved_window_recorded(self, rescheduler, provider, sample_task_base):
        task = _scheduled_task(sample_task_base)
        provider.add_busy(_at(10), _at(10, 45))

        event = asyncio.run(rescheduler.reschedule_affected([task], RescheduleTrigger.CALENDAR_CHANGE))

        change = event.changes[0]
        assert change.old_schedule == ScheduleWindow(start=_at(10), end=_at(10, 40))
        assert change.new_schedule.start == _at(11)
        assert task.scheduled_blocks[0].start_time == _at(11)

    def test_task_without_deadline_skipped(self, rescheduler, sample_task_base, sample_task):
        undated = Task(**{**sample_task_base, "id": str(uuid.uuid4()), "deadline": None})

        event = asyncio.run(rescheduler.reschedule_affected([undated, sample_task], RescheduleTrigger.TASK_UPDATE))

        assert event.affected_task_ids == [undated.id, sample_task.id]
        assert [c.task_id for c in event.changes] == [sample_task.id]
        assert undated.scheduled_blocks == []

    def test_working_hours_and_buffer_override(self, rescheduler, sample_task):
        event = asyncio.run(rescheduler.reschedule_affected(
            [sample_task], RescheduleTrigger.MANUAL_ADJUSTMENT, buffer_minutes=0
        ))

        assert event.changes[0].new_schedule == ScheduleWindow(start=_at(10), end=_at(11))

    def test_history_is_capped(self, rescheduler, kv_store, sample_task):
        capped = _make_rescheduler(rescheduler, events=ReschedulingEventRepository(kv_store, cap=2))

        ids = [
            asyncio.run(capped.reschedule_affected([sample_task], RescheduleTrigger.MANUAL_ADJUSTMENT)).id
            for _ in range(3)
        ]

        assert [e.id for e in capped.history()] == ids[1:]

    def test_task_history_is_capped(self, rescheduler, sample_task):
        capped = _make_rescheduler(rescheduler, history_cap=2)

        ids = [
            asyncio.run(capped.reschedule_affected([sample_task], RescheduleTrigger.MANUAL_ADJUSTMENT)).id
            for _ in range(3)
        ]

        assert [e.id for e in sample_task.rescheduling_history] == ids[1:]

    def test_failed_pass_sets_state(self, rescheduler, sample_task):
        class BrokenEvents:
            def append(self, event):
                raise RuntimeError("storage unavailable")

        broken = _make_rescheduler(rescheduler, events=BrokenEvents())

        with pytest.raises(RuntimeError):
            asyncio.run(broken.reschedule_affected([sample_task], RescheduleTrigger.MANUAL_ADJUSTMENT))

        assert broken.state == RescheduleState.FAILED
        assert not broken.in_progress


class TestRelaxation:
    """Relaxation ladder used when strict allocation fails."""

    def test_extended_deadline(self, rescheduler, provider, allocator, estimator, working_hours, sample_task_base):
        """Twenty free minutes before the deadline: strict allocation fails, the extended deadline succeeds."""
        task = _scheduled_task(sample_task_base)
        provider.add_busy(_at(10, 20), _at(13))

        with pytest.raises(CapacityExceeded):
            asyncio.run(allocator.allocate(task, estimator.estimate(task), working_hours, 15))

        event = asyncio.run(rescheduler.reschedule_affected([task], RescheduleTrigger.CALENDAR_CHANGE))

        assert len(event.changes) == 1
        new = event.changes[0].new_schedule
        assert new.start == _at(13, 15)
        assert task.deadline < new.end <= task.deadline + timedelta(days=7)
        # Only the allocation deadline is relaxed, the task keeps its own
        assert task.deadline == _at(13)

    def test_reduced_buffer(self, rescheduler, sample_task_base):
        task = Task(**{**sample_task_base, "deadline": _at(11, 45)})
        strict = _make_rescheduler(rescheduler, relaxation=RelaxationPolicy(deadline_extension_days=0))

        event = asyncio.run(strict.reschedule_affected([task], RescheduleTrigger.MANUAL_ADJUSTMENT))

        # 7 minute buffer: 10:00-10:12, 10:19-10:37, 10:44-11:08, 11:15-11:21
        assert [(b.start_time, b.end_time) for b in task.scheduled_blocks] == [
            (_at(10), _at(10, 12)),
            (_at(10, 19), _at(10, 37)),
            (_at(10, 44), _at(11, 8)),
            (_at(11, 15), _at(11, 21)),
        ]
        assert event.changes[0].new_schedule == ScheduleWindow(start=_at(10), end=_at(11, 21))

    def test_reduced_duration(self, rescheduler, sample_task_base):
        task = Task(**{**sample_task_base, "deadline": _at(11, 30)})
        strict = _make_rescheduler(
            rescheduler,
            buffer_minutes=5,
            relaxation=RelaxationPolicy(deadline_extension_days=0),
        )

        asyncio.run(strict.reschedule_affected([task], RescheduleTrigger.MANUAL_ADJUSTMENT))

        assert [b.duration_minutes for b in task.scheduled_blocks] == [8, 12, 16, 4]
        assert task.scheduled_end == _at(10, 55)

    def test_all_attempts_fail_keeps_prior_schedule(self, rescheduler, provider, task_repository, sample_task_base):
        task = _scheduled_task(sample_task_base)
        task_repository.create(task)
        prior_blocks = list(task.scheduled_blocks)
        provider.busy.append(BusyInterval(start=_at(9), end=_at(18, day=12)))

        event = asyncio.run(rescheduler.reschedule_affected([task], RescheduleTrigger.CALENDAR_CHANGE))

        assert event.changes == []
        assert event.affected_task_ids == [task.id]
        assert task.scheduled_blocks == prior_blocks
        assert task_repository.get(task.id).scheduled_blocks == prior_blocks
        assert rescheduler.history() == [event]


class TestSingleFlight:
    """Only one rescheduling pass runs at a time."""

    def test_concurrent_trigger_is_dropped(
        self, provider, estimator, event_repository, task_repository, clock, working_hours, sample_task
    ):
        class BlockingProvider(type(provider)):
            def __init__(self):
                super().__init__()
                self.entered = asyncio.Event()
                self.release = asyncio.Event()

            async def list_busy_intervals(self, calendar_id, range_start, range_end, exclude_task_id=None):
                self.entered.set()
                await self.release.wait()
                return await super().list_busy_intervals(calendar_id, range_start, range_end, exclude_task_id)

        async def scenario():
            blocking = BlockingProvider()
            rescheduler = Rescheduler(
                estimator=estimator,
                allocator=PhaseAllocator(AvailabilityFinder(blocking), clock=clock),
                events=event_repository,
                tasks=task_repository,
                provider=blocking,
                working_hours=working_hours,
                clock=clock,
            )
            first = asyncio.create_task(
                rescheduler.reschedule_affected([sample_task], RescheduleTrigger.MANUAL_ADJUSTMENT)
            )
            await blocking.entered.wait()
            assert rescheduler.in_progress

            second = await rescheduler.reschedule_affected([sample_task], RescheduleTrigger.TASK_UPDATE)
            blocking.release.set()
            return rescheduler, await first, second

        rescheduler, first, second = asyncio.run(scenario())

        assert second is None
        assert first is not None
        assert [e.id for e in rescheduler.history()] == [first.id]
        assert rescheduler.state == RescheduleState.COMPLETED


class TestListeners:
    """Listener notification after a completed pass."""

    def test_listeners_called_in_registration_order(self, rescheduler, sample_task):
        calls = []
        rescheduler.add_listener("first", lambda event: calls.append(("first", event.id)))
        rescheduler.add_listener("second", lambda event: calls.append(("second", event.id)))

        event = asyncio.run(rescheduler.reschedule_affected([sample_task], RescheduleTrigger.MANUAL_ADJUSTMENT))

        assert calls == [("first", event.id), ("second", event.id)]

    def test_failing_listener_does_not_block_others(self, rescheduler, sample_task):
        received = []

        def broken(event):
            raise ValueError("listener bug")

        rescheduler.add_listener("broken", broken)
        rescheduler.add_listener("ok", received.append)

        event = asyncio.run(rescheduler.reschedule_affected([sample_task], RescheduleTrigger.MANUAL_ADJUSTMENT))

        assert received == [event]
        assert rescheduler.state == RescheduleState.COMPLETED

    def test_removed_listener_not_called(self, rescheduler, sample_task):
        received = []
        rescheduler.add_listener("gone", received.append)
        rescheduler.remove_listener("gone")
        rescheduler.remove_listener("never-added")

        asyncio.run(rescheduler.reschedule_affected([sample_task], RescheduleTrigger.MANUAL_ADJUSTMENT))

        assert received == []


class TestExternalChanges:
    """handle_external_change() and check_rescheduling_needed()."""

    def test_change_to_mirrored_event_reschedules_task(self, rescheduler, provider, task_repository, sample_task_base):
        task = _scheduled_task(sample_task_base)
        other = Task(**{**sample_task_base, "id": str(uuid.uuid4()), "title": "Unrelated"})
        task_repository.create(task)
        task_repository.create(other)
        provider.add_busy(_at(10), _at(10, 45))

        event = asyncio.run(rescheduler.handle_external_change(CalendarChangeNotification(
            change_kind=ChangeKind.UPDATED,
            external_event_id="evt-old",
        )))

        assert event.trigger == "calendar_change"
        assert event.affected_task_ids == [task.id]
        assert task_repository.get(task.id).scheduled_start == _at(11)

    def test_unknown_event_is_ignored(self, rescheduler, task_repository, sample_task_base):
        task_repository.create(_scheduled_task(sample_task_base))

        event = asyncio.run(rescheduler.handle_external_change(CalendarChangeNotification(
            change_kind=ChangeKind.DELETED,
            external_event_id="evt-unknown",
        )))

        assert event is None
        assert rescheduler.history() == []
        assert rescheduler.state == RescheduleState.IDLE

    def test_done_tasks_not_rescheduled(self, rescheduler, task_repository, sample_task_base):
        task_repository.create(_scheduled_task(sample_task_base, status="done"))

        event = asyncio.run(rescheduler.handle_external_change(CalendarChangeNotification(
            change_kind=ChangeKind.UPDATED,
            external_event_id="evt-old",
        )))

        assert event is None

    def test_check_rescheduling_needed(self, rescheduler, provider, sample_task_base, sample_task):
        task = _scheduled_task(sample_task_base)

        assert asyncio.run(rescheduler.check_rescheduling_needed(task)) is False
        provider.add_busy(_at(10, 30), _at(10, 35))
        assert asyncio.run(rescheduler.check_rescheduling_needed(task)) is True
        assert asyncio.run(rescheduler.check_rescheduling_needed(sample_task)) is False

    def test_own_mirrored_events_do_not_trigger_rescheduling(self, rescheduler, provider, sample_task_base):
        task = _scheduled_task(sample_task_base)
        for block in task.scheduled_blocks:
            provider.busy.append(BusyInterval(start=block.start_time, end=block.end_time, task_id=task.id))

        assert asyncio.run(rescheduler.check_rescheduling_needed(task)) is False

        provider.busy.append(BusyInterval(start=_at(10), end=_at(10, 10), task_id="another-task"))
        assert asyncio.run(rescheduler.check_rescheduling_needed(task)) is True
