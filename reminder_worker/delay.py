import logging
from datetime import datetime, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)


def _parse_trigger(reminder_time: Union[datetime, str, None]) -> Optional[datetime]:
    if isinstance(reminder_time, datetime):
        trigger = reminder_time
    elif isinstance(reminder_time, str):
        try:
            trigger = datetime.fromisoformat(reminder_time.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if trigger.tzinfo is None:
        trigger = trigger.replace(tzinfo=timezone.utc)
    return trigger


def calculate_delay_ms(
    reminder_time: Union[datetime, str, None],
    now: Optional[datetime] = None,
) -> int:
    """
    Milliseconds to wait before a reminder due at ``reminder_time`` fires.

    Past-due and unparseable trigger times give 0 so the reminder fires
    immediately instead of being dropped.
    """
    trigger = _parse_trigger(reminder_time)
    if trigger is None:
        logger.warning(f"Unparseable reminder time {reminder_time!r}, firing immediately")
        return 0

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)

    delay_ms = int((trigger - current).total_seconds() * 1000)
    return max(delay_ms, 0)
