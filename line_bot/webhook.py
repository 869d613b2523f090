import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Tuple

from server.enums import ReminderChannel, TaskPriority, TaskStatus
from server.schemas import ReminderRequest, Task
from .security import validate_signature

logger = logging.getLogger(__name__)

FALLBACK_USER_ID = "unknown_user"


@dataclass
class WebhookDependencies:
    channel_secret: str
    task_repository: Any
    reminder_scheduler: Any
    reminder_offset_minutes: int
    reply_client: Optional[Any] = None
    ai_assistant: Optional[Any] = None


def extract_message_text(event: Mapping) -> Optional[str]:
    message = event.get("message") or {}
    if event.get("type", "message") != "message" or message.get("type") != "text":
        return None
    text = message.get("text")
    if not isinstance(text, str) or not text.strip():
        return None
    return text


def transform_text_to_task(text: str, event: Mapping, now: Optional[datetime] = None) -> Task:
    """Turn a free-text chat message into a new pending task."""
    now = now or datetime.now(timezone.utc)
    source = event.get("source") or {}
    user_id = source.get("userId") if isinstance(source.get("userId"), str) else None

    return Task(
        task_id=str(uuid.uuid4()),
        user_id=user_id or FALLBACK_USER_ID,
        title=text.strip(),
        due_at=None,
        priority=TaskPriority.normal,
        status=TaskStatus.pending,
        reminder_channel=ReminderChannel.line,
        created_at=now,
        updated_at=now,
    )


def build_reminder_request(
    task: Task,
    reminder_offset_minutes: int,
    now: Optional[datetime] = None,
) -> ReminderRequest:
    """Remind at the due time, or ``reminder_offset_minutes`` from now when there is none."""
    now = now or datetime.now(timezone.utc)
    reminder_time = task.due_at or now + timedelta(minutes=reminder_offset_minutes)
    return ReminderRequest(task=task, reminder_time=reminder_time)


async def _acknowledge(event: Mapping, task: Task, deps: WebhookDependencies) -> None:
    reply_token = event.get("replyToken")
    if not (reply_token and deps.reply_client and deps.ai_assistant):
        return
    try:
        reply = await asyncio.to_thread(
            deps.ai_assistant.generate_acknowledgement, task.title, task.user_id
        )
        if reply:
            await asyncio.to_thread(deps.reply_client.reply_with_text, reply_token, reply)
    except Exception as e:
        logger.warning(f"Acknowledgement for task {task.task_id} not sent: {e}")


async def process_line_event(event: Mapping, deps: WebhookDependencies) -> Optional[Task]:
    text = extract_message_text(event)
    if text is None:
        logger.info(f"Skipping non-text LINE event: {event.get('type')}")
        return None

    task = transform_text_to_task(text, event)
    await asyncio.to_thread(deps.task_repository.save_task, task)

    reminder_request = build_reminder_request(task, deps.reminder_offset_minutes)
    await deps.reminder_scheduler.schedule_reminder(reminder_request)
    logger.info(
        f"Task {task.task_id} saved for {task.user_id}, reminder at {reminder_request.reminder_time.isoformat()}"
    )

    await _acknowledge(event, task, deps)
    return task


async def handle_webhook(
    raw_body: bytes,
    headers: Mapping[str, str],
    deps: WebhookDependencies,
) -> Tuple[Mapping, int]:
    signature = headers.get("x-line-signature")
    if not signature:
        logger.warning("Missing x-line-signature header")
        return {"status": "error", "message": "Missing signature"}, 401

    if not validate_signature(deps.channel_secret, raw_body, signature):
        logger.warning("Invalid LINE signature")
        return {"status": "error", "message": "Invalid signature"}, 401

    try:
        body = json.loads(raw_body.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Malformed webhook body: {e}")
        return {"status": "error", "message": "Malformed body"}, 400

    events = body.get("events") if isinstance(body, dict) else None
    if not isinstance(events, list):
        events = []

    try:
        created = 0
        for event in events:
            if not isinstance(event, dict):
                continue
            if await process_line_event(event, deps):
                created += 1
    except Exception as e:
        logger.error(f"Webhook handling error: {e}", exc_info=True)
        return {"status": "error", "message": "Failed to process events"}, 500

    return {"status": "ok", "events": len(events), "tasks_created": created}, 200
