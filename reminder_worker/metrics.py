from prometheus_client import Counter

REMINDERS_SCHEDULED = Counter(
    "reminders_scheduled_total",
    "Reminders registered with the scheduler",
    ["mode"]
)

REMINDERS_CANCELLED = Counter(
    "reminders_cancelled_total",
    "Pending reminders removed before firing",
    ["mode"]
)

REMINDERS_DISPATCHED = Counter(
    "reminders_dispatched_total",
    "Reminder deliveries attempted",
    ["outcome"]
)

SCHEDULER_FALLBACKS = Counter(
    "reminder_scheduler_fallbacks_total",
    "Switches from the durable backend to in-memory timers",
    ["reason"]
)
