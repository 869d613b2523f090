from fastapi import HTTPException, Request
from line_bot.webhook import WebhookDependencies
from server.repository import TaskRepository


def get_services(request: Request):
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return services


def get_task_repository(request: Request) -> TaskRepository:
    return get_services(request).task_repository


def get_webhook_dependencies(request: Request) -> WebhookDependencies:
    services = get_services(request)
    return WebhookDependencies(
        channel_secret=services.channel_secret,
        task_repository=services.task_repository,
        reminder_scheduler=services.reminder_scheduler,
        reminder_offset_minutes=services.reminder_offset_minutes,
        reply_client=services.reply_client,
        ai_assistant=services.ai_assistant,
    )
