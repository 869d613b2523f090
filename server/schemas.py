from typing import Optional
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator
from server.enums import TaskStatus, TaskPriority, ReminderChannel

# =========================================================
# PYDANTIC SCHEMAS
# =========================================================

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Task(BaseModel):
    task_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    due_at: Optional[datetime] = None
    priority: TaskPriority = TaskPriority.normal
    category: Optional[str] = None
    status: TaskStatus = TaskStatus.pending
    reminder_channel: ReminderChannel = ReminderChannel.line
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v

    @field_validator("due_at", "created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class ReminderRequest(BaseModel):
    """A task paired with the moment its reminder should fire."""
    task: Task
    reminder_time: datetime

    @field_validator("reminder_time")
    @classmethod
    def normalize_reminder_time(cls, v: datetime) -> datetime:
        return _as_utc(v)
