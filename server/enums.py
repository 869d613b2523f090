import enum
# =========================================================
# ENUMS
# =========================================================
class TaskStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    snoozed = "snoozed"

class TaskPriority(str, enum.Enum):
    low = "low"
    normal = "normal"
    high = "high"

class ReminderChannel(str, enum.Enum):
    line = "line"
