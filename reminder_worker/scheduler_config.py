"""
Reminder Scheduler Configuration

Defaults for the reminder queue and message rendering.
"""

# Queue / job store namespace used when none is configured
DEFAULT_QUEUE_NAME = "task_reminders"

# Lead time for tasks that arrive without a due time
DEFAULT_REMINDER_OFFSET_MINUTES = 10

# Persona phrase appended to every reminder
DEFAULT_CLOSING_PHRASE = "Are you statisfied, habibi?"

# Timezone used only to render the due time in the message
DEFAULT_DISPLAY_TIMEZONE = "UTC"

# Name given to every delayed reminder job
REMINDER_JOB_NAME = "dispatch_task_reminder"

# Outbound push timeout (seconds)
PUSH_TIMEOUT_SECONDS = 15

# Redis connect timeout (seconds), bounds the readiness check before fallback
REDIS_CONNECT_TIMEOUT_SECONDS = 5
