import logging
from typing import Any, Optional
import pytz
import requests

from line_bot.client import LineApiError, post_line_api, text_messages
from server.schemas import Task
from .scheduler_config import PUSH_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class ReminderDispatcher:
    """
    Renders reminder text and delivers it as a LINE push message.

    Every message ends with the configured closing phrase.
    """

    def __init__(
        self,
        api_base_url: str,
        channel_access_token: str,
        closing_phrase: str,
        http_client: Optional[Any] = None,
        display_timezone: str = "UTC",
    ) -> None:
        self.api_base_url = api_base_url.rstrip("/")
        self.channel_access_token = channel_access_token
        self.closing_phrase = closing_phrase
        self.http_client = http_client
        try:
            self.display_timezone = pytz.timezone(display_timezone)
        except pytz.UnknownTimeZoneError:
            logger.warning(f"Unknown display timezone {display_timezone!r}, using UTC")
            self.display_timezone = pytz.utc

    def _format_due(self, task: Task) -> str:
        if task.due_at is None:
            return ""
        due_local = task.due_at.astimezone(self.display_timezone)
        return f" (due {due_local.strftime('%Y-%m-%d %H:%M %Z')})"

    def build_message_text(self, task: Task) -> str:
        return f"Reminder: {task.title}{self._format_due(task)}. {self.closing_phrase}"

    def build_push_payload(self, task: Task) -> dict:
        return {"to": task.user_id, "messages": text_messages(self.build_message_text(task))}

    def dispatch_task_reminder(self, task: Task) -> None:
        """Push the reminder for ``task``. Failures propagate to the caller."""
        payload = self.build_push_payload(task)
        try:
            post_line_api(
                f"{self.api_base_url}/v2/bot/message/push",
                payload,
                self.channel_access_token,
                http_client=self.http_client,
                timeout=PUSH_TIMEOUT_SECONDS,
            )
        except LineApiError as e:
            logger.error(f"❌ Reminder push for task {task.task_id} rejected with status {e.status_code}")
            raise
        except requests.RequestException as e:
            logger.error(f"❌ Reminder push for task {task.task_id} failed: {e}")
            raise
        logger.info(f"✅ Sent reminder for task {task.task_id} to {task.user_id}")
