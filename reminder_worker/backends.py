"""
Reminder Backends

Two interchangeable stores for pending reminders, both keyed by task id:

- DurableReminderBackend: APScheduler date jobs persisted in Redis, so
  reminders survive a restart.
- InMemoryReminderBackend: event loop timers, lost on restart.

The engine in scheduler.py owns exactly one of them at a time.
"""
import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol, Set, Union
import pytz
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.jobstores.base import BaseJobStore, JobLookupError
from apscheduler.jobstores.redis import RedisJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from server.schemas import Task
from .config import RedisConnectionOptions
from .metrics import REMINDERS_DISPATCHED
from .scheduler_config import REMINDER_JOB_NAME

logger = logging.getLogger(__name__)

DispatchFn = Callable[[Task], None]


class SchedulerMode(str, enum.Enum):
    DURABLE = "durable"
    IN_MEMORY = "in_memory"


class ReminderSchedulerError(RuntimeError):
    pass


# =========================================================
# ENTRIES
# =========================================================
@dataclass(frozen=True)
class DurableEntry:
    job_id: str
    run_date: datetime


@dataclass(frozen=True)
class TimerEntry:
    handle: asyncio.TimerHandle
    delay_ms: int


ReminderEntry = Union[DurableEntry, TimerEntry]


class ReminderBackend(Protocol):
    mode: SchedulerMode

    async def start(self) -> None: ...

    async def schedule(self, task: Task, delay_ms: int) -> ReminderEntry: ...

    async def cancel(self, task_id: str) -> bool: ...

    async def pending_task_ids(self) -> List[str]: ...

    async def shutdown(self) -> None: ...

    async def discard(self) -> None: ...


# =========================================================
# DURABLE (APScheduler + Redis)
# =========================================================

# Dispatch callables of the durable backends running in this process, keyed by
# each backend's own worker key. Persisted jobs only hold an import path and
# plain arguments, so the job function resolves its dispatcher here when it fires.
_queue_workers: Dict[str, DispatchFn] = {}


def run_reminder_job(worker_key: str, task_payload: dict) -> None:
    """Job function stored with every durable reminder."""
    dispatch = _queue_workers.get(worker_key)
    if dispatch is None:
        raise ReminderSchedulerError(f"No reminder worker running for {worker_key!r}")
    dispatch(Task.model_validate(task_payload))


class DurableReminderBackend:
    mode = SchedulerMode.DURABLE

    def __init__(
        self,
        queue_name: str,
        dispatch: DispatchFn,
        connection: Optional[RedisConnectionOptions] = None,
        jobstore: Optional[BaseJobStore] = None,
    ) -> None:
        self.queue_name = queue_name
        self.worker_key = f"{queue_name}:{uuid.uuid4().hex}"
        self._dispatch = dispatch
        if jobstore is None:
            if connection is None:
                raise ValueError("A redis connection is required for the durable reminder backend")
            jobstore = RedisJobStore(
                db=connection.db,
                jobs_key=f"{queue_name}.jobs",
                run_times_key=f"{queue_name}.run_times",
                **connection.as_connect_args(),
            )
        self._jobstore = jobstore
        self._scheduler = AsyncIOScheduler(
            jobstores={"default": self._jobstore},
            job_defaults={
                # fire reminders that came due while the process was down
                "misfire_grace_time": None,
                "coalesce": True,
                "max_instances": 1,
            },
            timezone=pytz.utc,
        )
        self._scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self._running = False

    def _on_job_executed(self, event) -> None:
        REMINDERS_DISPATCHED.labels(outcome="success").inc()
        logger.info(f"Reminder job {event.job_id} completed")

    def _on_job_error(self, event) -> None:
        REMINDERS_DISPATCHED.labels(outcome="failure").inc()
        logger.error(
            f"Reminder job failed for task {event.job_id} on queue {self.queue_name}: {event.exception!r}"
        )

    def _require_running(self) -> None:
        if not self._running:
            raise ReminderSchedulerError(f"Reminder queue {self.queue_name!r} is not running")

    async def start(self) -> None:
        if self._running:
            return
        # One round trip to confirm the store is reachable before taking jobs.
        await asyncio.to_thread(self._jobstore.get_next_run_time)
        if self.worker_key in _queue_workers:
            raise ReminderSchedulerError(f"Reminder worker {self.worker_key!r} is already registered")
        _queue_workers[self.worker_key] = self._dispatch
        self._scheduler.start(paused=True)
        try:
            await asyncio.to_thread(self._adopt_orphaned_jobs)
        except Exception:
            _queue_workers.pop(self.worker_key, None)
            self._scheduler.shutdown(wait=False)
            raise
        self._scheduler.resume()
        self._running = True
        logger.info(f"Durable reminder queue {self.queue_name!r} ready")

    def _adopt_orphaned_jobs(self) -> None:
        """Point jobs left by a worker that is no longer running at this one."""
        adopted = 0
        for job in self._scheduler.get_jobs():
            if len(job.args) != 2 or job.args[0] in _queue_workers:
                continue
            self._scheduler.modify_job(job.id, args=[self.worker_key, job.args[1]])
            adopted += 1
        if adopted:
            logger.info(f"Adopted {adopted} pending reminders on queue {self.queue_name!r}")

    async def schedule(self, task: Task, delay_ms: int) -> DurableEntry:
        self._require_running()
        run_date = datetime.now(timezone.utc) + timedelta(milliseconds=delay_ms)
        await asyncio.to_thread(
            self._scheduler.add_job,
            run_reminder_job,
            trigger=DateTrigger(run_date=run_date, timezone=pytz.utc),
            args=[self.worker_key, task.model_dump(mode="json")],
            id=task.task_id,
            name=REMINDER_JOB_NAME,
            replace_existing=True,
        )
        return DurableEntry(job_id=task.task_id, run_date=run_date)

    async def cancel(self, task_id: str) -> bool:
        self._require_running()
        try:
            await asyncio.to_thread(self._scheduler.remove_job, task_id)
        except JobLookupError:
            return False
        return True

    async def pending_task_ids(self) -> List[str]:
        self._require_running()
        jobs = await asyncio.to_thread(self._scheduler.get_jobs)
        return [job.id for job in jobs]

    async def shutdown(self) -> None:
        if not self._running:
            return
        _queue_workers.pop(self.worker_key, None)
        # Stops the executor and closes the job store connection.
        self._scheduler.shutdown(wait=False)
        self._running = False
        logger.info(f"Durable reminder queue {self.queue_name!r} closed")

    async def discard(self) -> None:
        """Release whatever was built, tolerating a store that never came up."""
        _queue_workers.pop(self.worker_key, None)
        if self._running:
            try:
                self._scheduler.shutdown(wait=False)
            except Exception as e:
                logger.warning(f"Failed to stop reminder worker during fallback: {e}")
            self._running = False
            return
        try:
            self._jobstore.shutdown()
        except Exception as e:
            logger.warning(f"Failed to close reminder queue during fallback: {e}")


# =========================================================
# IN-MEMORY (event loop timers)
# =========================================================
class InMemoryReminderBackend:
    mode = SchedulerMode.IN_MEMORY

    def __init__(self, dispatch: DispatchFn) -> None:
        self._dispatch = dispatch
        self._timers: Dict[str, TimerEntry] = {}
        self._in_flight: Set[asyncio.Task] = set()

    async def start(self) -> None:
        return None

    async def schedule(self, task: Task, delay_ms: int) -> TimerEntry:
        loop = asyncio.get_running_loop()
        handle = loop.call_later(delay_ms / 1000, self._fire, task)
        entry = TimerEntry(handle=handle, delay_ms=delay_ms)
        self._timers[task.task_id] = entry
        return entry

    def _fire(self, task: Task) -> None:
        # A superseded timer is cancelled and never gets here.
        self._timers.pop(task.task_id, None)
        delivery = asyncio.ensure_future(self._deliver(task))
        self._in_flight.add(delivery)
        delivery.add_done_callback(self._in_flight.discard)

    async def _deliver(self, task: Task) -> None:
        try:
            await asyncio.to_thread(self._dispatch, task)
        except Exception:
            REMINDERS_DISPATCHED.labels(outcome="failure").inc()
            logger.error(f"In-memory reminder for task {task.task_id} failed", exc_info=True)
            return
        REMINDERS_DISPATCHED.labels(outcome="success").inc()

    async def cancel(self, task_id: str) -> bool:
        entry = self._timers.pop(task_id, None)
        if entry is None:
            return False
        entry.handle.cancel()
        return True

    async def pending_task_ids(self) -> List[str]:
        return list(self._timers)

    async def shutdown(self) -> None:
        for entry in self._timers.values():
            entry.handle.cancel()
        cleared = len(self._timers)
        self._timers.clear()
        if self._in_flight:
            logger.info(f"{len(self._in_flight)} reminder deliveries still in flight at shutdown")
        logger.info(f"Cleared {cleared} in-memory reminder timers")

    async def discard(self) -> None:
        await self.shutdown()
