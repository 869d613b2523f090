import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from apscheduler.jobstores.memory import MemoryJobStore
from prometheus_client import REGISTRY

from conftest import CLOSING_PHRASE, FakeDispatcher, make_task
from reminder_worker import ReminderScheduler, ReminderSchedulerError, SchedulerMode
from reminder_worker.backends import DurableReminderBackend, _queue_workers
from server.schemas import ReminderRequest

UNREACHABLE_REDIS = "redis://127.0.0.1:1/0"


def _request(task, seconds=60.0):
    return ReminderRequest(task=task, reminder_time=datetime.now(timezone.utc) + timedelta(seconds=seconds))


async def _wait_for(predicate, timeout=3.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.02)
    await asyncio.wait_for(poll(), timeout)


def _in_memory(dispatcher):
    return ReminderScheduler(None, dispatcher, force_in_memory_mode=True)


def _durable(dispatcher, queue_name=None, jobstore=None):
    return ReminderScheduler(
        None,
        dispatcher,
        queue_name=queue_name or f"test_{uuid.uuid4().hex[:8]}",
        jobstore=jobstore or MemoryJobStore(),
    )


# =========================================================
# IN-MEMORY MODE
# =========================================================
async def test_forced_in_memory_mode(dispatcher):
    scheduler = _in_memory(dispatcher)
    await scheduler.initialize()
    assert scheduler.mode is SchedulerMode.IN_MEMORY
    assert scheduler.initialized
    await scheduler.shutdown()


async def test_rescheduling_keeps_one_pending_reminder(dispatcher):
    scheduler = _in_memory(dispatcher)
    await scheduler.initialize()
    task = make_task()

    for seconds in (60, 120, 180):
        await scheduler.schedule_reminder(_request(task, seconds))

    assert await scheduler.pending_task_ids() == [task.task_id]
    await scheduler.shutdown()


async def test_cancel_reminder(dispatcher):
    scheduler = _in_memory(dispatcher)
    await scheduler.initialize()
    task = make_task()
    await scheduler.schedule_reminder(_request(task))

    assert await scheduler.cancel_reminder(task.task_id) is True
    assert await scheduler.cancel_reminder(task.task_id) is False
    assert await scheduler.pending_task_ids() == []
    await scheduler.shutdown()


async def test_shutdown_cancels_pending_timers(dispatcher):
    scheduler = _in_memory(dispatcher)
    await scheduler.initialize()
    await scheduler.schedule_reminder(_request(make_task(), 0.05))

    await scheduler.shutdown()
    await asyncio.sleep(0.2)

    assert dispatcher.sent == []
    # second shutdown is a no-op
    await scheduler.shutdown()


async def test_reminder_fires_once_with_closing_phrase(dispatcher):
    scheduler = _in_memory(dispatcher)
    await scheduler.initialize()
    task = make_task(title="Stretch")

    await scheduler.schedule_reminder(_request(task, 0.1))
    await scheduler.schedule_reminder(_request(task, 0.15))
    await _wait_for(lambda: dispatcher.sent)
    await asyncio.sleep(0.1)

    assert len(dispatcher.sent) == 1
    sent_task, text = dispatcher.sent[0]
    assert sent_task.task_id == task.task_id
    assert text.endswith(CLOSING_PHRASE)
    assert await scheduler.pending_task_ids() == []
    await scheduler.shutdown()


async def test_past_due_reminder_fires_immediately(dispatcher):
    scheduler = _in_memory(dispatcher)
    await scheduler.initialize()
    await scheduler.schedule_reminder(_request(make_task(), -30))

    await _wait_for(lambda: dispatcher.sent, timeout=1.0)
    await scheduler.shutdown()


async def test_failed_delivery_does_not_break_scheduler():
    failing = FakeDispatcher(fail=True)
    scheduler = _in_memory(failing)
    await scheduler.initialize()
    await scheduler.schedule_reminder(_request(make_task(), 0.01))

    await _wait_for(failing.delivered.is_set)
    await scheduler.schedule_reminder(_request(make_task()))
    assert len(await scheduler.pending_task_ids()) == 1
    await scheduler.shutdown()


# =========================================================
# FALLBACK
# =========================================================
async def test_unreachable_redis_falls_back_when_enabled(dispatcher):
    scheduler = ReminderScheduler(UNREACHABLE_REDIS, dispatcher, enable_offline_fallback=True)
    assert scheduler.mode is SchedulerMode.DURABLE

    await scheduler.initialize()
    assert scheduler.mode is SchedulerMode.IN_MEMORY

    task = make_task()
    await scheduler.schedule_reminder(_request(task))
    assert await scheduler.pending_task_ids() == [task.task_id]
    await scheduler.shutdown()


async def test_unreachable_redis_fails_without_fallback(dispatcher):
    scheduler = ReminderScheduler(UNREACHABLE_REDIS, dispatcher, enable_offline_fallback=False)
    with pytest.raises(Exception):
        await scheduler.initialize()
    assert not scheduler.initialized


def test_bad_redis_url_falls_back_at_construction(dispatcher):
    scheduler = ReminderScheduler("not-a-redis-url", dispatcher, enable_offline_fallback=True)
    assert scheduler.mode is SchedulerMode.IN_MEMORY


def test_bad_redis_url_raises_without_fallback(dispatcher):
    with pytest.raises(ValueError):
        ReminderScheduler("not-a-redis-url", dispatcher)


async def test_initialize_is_idempotent(dispatcher):
    scheduler = ReminderScheduler(UNREACHABLE_REDIS, dispatcher, enable_offline_fallback=True)
    await scheduler.initialize()
    await scheduler.initialize()
    assert scheduler.mode is SchedulerMode.IN_MEMORY
    await scheduler.shutdown()


# =========================================================
# DURABLE MODE
# =========================================================
async def test_durable_schedule_before_initialize_raises(dispatcher):
    scheduler = _durable(dispatcher)
    with pytest.raises(ReminderSchedulerError):
        await scheduler.schedule_reminder(_request(make_task()))


async def test_durable_job_id_is_task_id(dispatcher):
    scheduler = _durable(dispatcher)
    await scheduler.initialize()
    assert scheduler.mode is SchedulerMode.DURABLE
    task = make_task()

    await scheduler.schedule_reminder(_request(task, 60))
    await scheduler.schedule_reminder(_request(task, 120))

    assert await scheduler.pending_task_ids() == [task.task_id]
    assert await scheduler.cancel_reminder(task.task_id) is True
    assert await scheduler.cancel_reminder(task.task_id) is False
    await scheduler.shutdown()


async def test_durable_reminder_fires(dispatcher):
    scheduler = _durable(dispatcher)
    await scheduler.initialize()
    task = make_task(title="Submit report")

    await scheduler.schedule_reminder(_request(task, 0.1))
    await _wait_for(lambda: dispatcher.sent)

    sent_task, text = dispatcher.sent[0]
    assert sent_task.task_id == task.task_id
    assert sent_task.title == "Submit report"
    assert text.endswith(CLOSING_PHRASE)
    assert await scheduler.pending_task_ids() == []
    assert await scheduler.cancel_reminder(task.task_id) is False
    await scheduler.shutdown()


def _failed_dispatches():
    return REGISTRY.get_sample_value("reminders_dispatched_total", {"outcome": "failure"}) or 0


async def test_durable_failed_delivery_is_removed_and_logged(caplog):
    failing = FakeDispatcher(fail=True)
    scheduler = _durable(failing)
    await scheduler.initialize()
    task = make_task()
    before = _failed_dispatches()

    with caplog.at_level(logging.ERROR, logger="reminder_worker.backends"):
        await scheduler.schedule_reminder(_request(task, 0.05))
        await _wait_for(lambda: _failed_dispatches() > before)

    assert await scheduler.pending_task_ids() == []
    assert await scheduler.cancel_reminder(task.task_id) is False
    assert any(
        r.levelno == logging.ERROR and task.task_id in r.getMessage() for r in caplog.records
    )
    await scheduler.shutdown()


async def test_engines_sharing_a_queue_name_keep_their_own_worker():
    first_dispatcher, second_dispatcher = FakeDispatcher(), FakeDispatcher()
    first = _durable(first_dispatcher, queue_name="shared")
    second = _durable(second_dispatcher, queue_name="shared")
    await first.initialize()
    await second.initialize()

    await second.shutdown()
    await first.schedule_reminder(_request(make_task(), 0.05))
    await _wait_for(lambda: first_dispatcher.sent)

    assert len(first_dispatcher.sent) == 1
    assert second_dispatcher.sent == []
    await first.shutdown()


async def test_restarted_worker_delivers_reminders_left_in_the_store():
    jobstore = MemoryJobStore()
    old_dispatcher, new_dispatcher = FakeDispatcher(), FakeDispatcher()
    old = _durable(old_dispatcher, queue_name="restart", jobstore=jobstore)
    await old.initialize()
    task = make_task(title="Left behind")
    await old.schedule_reminder(_request(task, 0.3))
    await old.shutdown()

    new = _durable(new_dispatcher, queue_name="restart", jobstore=jobstore)
    await new.initialize()
    await _wait_for(lambda: new_dispatcher.sent)

    assert new_dispatcher.sent[0][0].task_id == task.task_id
    assert old_dispatcher.sent == []
    await new.shutdown()


async def test_durable_backend_refuses_a_registered_worker_key(dispatcher):
    backend = DurableReminderBackend("dup", dispatcher.dispatch_task_reminder, jobstore=MemoryJobStore())
    _queue_workers[backend.worker_key] = dispatcher.dispatch_task_reminder
    try:
        with pytest.raises(ReminderSchedulerError):
            await backend.start()
    finally:
        _queue_workers.pop(backend.worker_key, None)
