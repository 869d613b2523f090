"""
Reminder Scheduler

Owns every pending reminder, at most one per task id. Reminders are kept in a
durable Redis-backed job queue when it is reachable, otherwise in event loop
timers. The switch to timers is one-way and only happens while the scheduler
is being constructed or initialized, and only when offline fallback is enabled.
"""
import logging
from typing import Any, Optional, Union
from apscheduler.jobstores.base import BaseJobStore

from server.schemas import ReminderRequest
from .backends import (
    DurableReminderBackend,
    InMemoryReminderBackend,
    ReminderBackend,
    SchedulerMode,
)
from .config import RedisConnectionOptions, build_redis_connection_options
from .delay import calculate_delay_ms
from .metrics import REMINDERS_CANCELLED, REMINDERS_SCHEDULED, SCHEDULER_FALLBACKS
from .scheduler_config import DEFAULT_QUEUE_NAME

logger = logging.getLogger(__name__)


class ReminderScheduler:
    def __init__(
        self,
        connection: Union[RedisConnectionOptions, str, None],
        reminder_dispatcher: Any,
        queue_name: str = DEFAULT_QUEUE_NAME,
        enable_offline_fallback: bool = False,
        force_in_memory_mode: bool = False,
        jobstore: Optional[BaseJobStore] = None,
    ) -> None:
        """
        Arguments:
            connection: Redis connection options, or a redis:// URL to parse.
            reminder_dispatcher: object with ``dispatch_task_reminder(task)``.
            queue_name: namespace of the durable job queue.
            enable_offline_fallback: use in-memory timers when the durable
                queue cannot be built or reached instead of failing.
            force_in_memory_mode: skip the durable queue entirely.
            jobstore: APScheduler job store to use instead of Redis.
        """
        self.queue_name = queue_name
        self.reminder_dispatcher = reminder_dispatcher
        self.enable_offline_fallback = enable_offline_fallback
        self._initialized = False
        self._closed = False

        if force_in_memory_mode:
            self._backend: ReminderBackend = InMemoryReminderBackend(self._dispatch)
        else:
            try:
                if isinstance(connection, str):
                    connection = build_redis_connection_options(connection)
                self._backend = DurableReminderBackend(
                    queue_name,
                    self._dispatch,
                    connection=connection,
                    jobstore=jobstore,
                )
            except Exception as e:
                if not enable_offline_fallback:
                    logger.error(f"Could not build reminder queue {queue_name!r}: {e}")
                    raise
                logger.warning(
                    f"Reminder queue {queue_name!r} could not be built ({e}); "
                    "defaulting to in-memory reminders"
                )
                SCHEDULER_FALLBACKS.labels(reason="construction_failed").inc()
                self._backend = InMemoryReminderBackend(self._dispatch)

        logger.info(f"ReminderScheduler created: queue={queue_name} mode={self.mode.value}")

    @property
    def mode(self) -> SchedulerMode:
        return self._backend.mode

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _dispatch(self, task) -> None:
        self.reminder_dispatcher.dispatch_task_reminder(task)

    async def initialize(self) -> None:
        if self._initialized:
            logger.info(f"ReminderScheduler already initialized (mode={self.mode.value})")
            return

        try:
            await self._backend.start()
        except Exception as e:
            if self.mode is SchedulerMode.IN_MEMORY or not self.enable_offline_fallback:
                logger.error(f"Reminder queue {self.queue_name!r} failed to start: {e}", exc_info=True)
                raise
            logger.warning(
                f"Reminder queue {self.queue_name!r} failed to start ({e!r}); "
                "falling back to in-memory reminders"
            )
            await self._switch_to_in_memory("initialization_failed")

        self._initialized = True
        logger.info(f"🚀 ReminderScheduler initialized (mode={self.mode.value})")

    async def _switch_to_in_memory(self, reason: str) -> None:
        await self._backend.discard()
        self._backend = InMemoryReminderBackend(self._dispatch)
        SCHEDULER_FALLBACKS.labels(reason=reason).inc()
        logger.warning(f"ReminderScheduler switched to in-memory mode: {reason}")

    async def schedule_reminder(self, reminder_request: ReminderRequest) -> None:
        """
        Register the reminder, replacing any pending one for the same task.

        Backend errors are logged and re-raised; they never trigger fallback.
        """
        task_id = reminder_request.task.task_id
        try:
            await self.cancel_reminder(task_id)
            delay_ms = calculate_delay_ms(reminder_request.reminder_time)
            await self._backend.schedule(reminder_request.task, delay_ms)
        except Exception as e:
            logger.error(f"Failed to schedule reminder for task {task_id}: {e}", exc_info=True)
            raise

        REMINDERS_SCHEDULED.labels(mode=self.mode.value).inc()
        logger.info(f"⏰ Reminder scheduled for task {task_id} in {delay_ms}ms (mode={self.mode.value})")

    async def cancel_reminder(self, task_id: str) -> bool:
        try:
            cancelled = await self._backend.cancel(task_id)
        except Exception as e:
            logger.error(f"Failed to cancel reminder for task {task_id}: {e}", exc_info=True)
            raise

        if cancelled:
            REMINDERS_CANCELLED.labels(mode=self.mode.value).inc()
            logger.info(f"Reminder cancelled for task {task_id}")
        return cancelled

    async def pending_task_ids(self) -> list:
        return await self._backend.pending_task_ids()

    async def shutdown(self) -> None:
        if self._closed:
            logger.info("ReminderScheduler already shut down")
            return
        try:
            await self._backend.shutdown()
        except Exception as e:
            logger.error(f"ReminderScheduler shutdown failed: {e}", exc_info=True)
            raise
        self._initialized = False
        self._closed = True
        logger.info(f"🛑 ReminderScheduler stopped (mode={self.mode.value})")
