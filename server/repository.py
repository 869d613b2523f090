"""
Task persistence.

TaskRepository stores tasks through SQLAlchemy. When the database cannot be
reached at connect() time and offline fallback is enabled, it keeps tasks in
process memory instead for the rest of its life.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from server.database import Base, build_engine, build_session_factory
from server.models import TaskRecord
from server.schemas import Task

logger = logging.getLogger(__name__)


class TaskRepositoryError(RuntimeError):
    pass


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _due_sort_key(task: Task):
    # tasks without a due time go last
    return (task.due_at is None, task.due_at or task.created_at, task.created_at)


class TaskRepository:
    def __init__(self, database_url: str, enable_offline_fallback: bool = False) -> None:
        self.database_url = database_url
        self.enable_offline_fallback = enable_offline_fallback
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._offline_tasks: Optional[Dict[str, Task]] = None
        self._connected = False

    @property
    def offline(self) -> bool:
        return self._offline_tasks is not None

    def connect(self) -> None:
        if self._connected:
            return
        try:
            engine = build_engine(self.database_url)
            Base.metadata.create_all(bind=engine)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            if not self.enable_offline_fallback:
                logger.error(f"Task database unavailable: {e}")
                raise
            logger.warning(f"Task database unavailable ({e}); keeping tasks in memory")
            self._offline_tasks = {}
        else:
            self._engine = engine
            self._session_factory = build_session_factory(engine)
            logger.info("✅ Task database connected")
        self._connected = True

    def disconnect(self) -> None:
        if not self._connected:
            return
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None
        self._connected = False

    def _require_connected(self, operation: str) -> None:
        if not self._connected:
            raise TaskRepositoryError(f"Repository not connected. Call connect() before {operation}().")

    def save_task(self, task: Task) -> None:
        self._require_connected("save_task")
        if self._offline_tasks is not None:
            self._offline_tasks[task.task_id] = task
            return

        db = self._session_factory()
        try:
            db.merge(TaskRecord(
                task_id=task.task_id,
                user_id=task.user_id,
                title=task.title,
                due_at=_naive_utc(task.due_at),
                priority=task.priority,
                category=task.category,
                status=task.status,
                reminder_channel=task.reminder_channel,
                created_at=_naive_utc(task.created_at),
                updated_at=_naive_utc(task.updated_at),
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def find_tasks_by_user(self, user_id: str) -> List[Task]:
        self._require_connected("find_tasks_by_user")
        if self._offline_tasks is not None:
            tasks = [t for t in self._offline_tasks.values() if t.user_id == user_id]
            return sorted(tasks, key=_due_sort_key)

        db = self._session_factory()
        try:
            records = db.query(TaskRecord).filter(
                TaskRecord.user_id == user_id
            ).order_by(
                TaskRecord.due_at.is_(None), TaskRecord.due_at, TaskRecord.created_at
            ).all()
            return [Task.model_validate(r) for r in records]
        finally:
            db.close()
