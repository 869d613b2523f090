from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Enum as SQLEnum, Index
from server.database import Base
from server.enums import TaskStatus, TaskPriority, ReminderChannel

# =========================================================
# DATABASE MODELS
# =========================================================
class TaskRecord(Base):
    __tablename__ = "tasks"
    task_id = Column(String(64), primary_key=True)
    user_id = Column(String(128), nullable=False)
    title = Column(Text, nullable=False)
    due_at = Column(DateTime)
    priority = Column(SQLEnum(TaskPriority), nullable=False, default=TaskPriority.normal)
    category = Column(String(100))
    status = Column(SQLEnum(TaskStatus), nullable=False, default=TaskStatus.pending)
    reminder_channel = Column(SQLEnum(ReminderChannel), nullable=False, default=ReminderChannel.line)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (Index("ix_tasks_user_due", "user_id", "due_at"),)
