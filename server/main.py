import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional
from fastapi import FastAPI, Request
from server.config import ServerConfig, config as server_config
from server.repository import TaskRepository
from server.routes import router
from server.routes.prometheus import metrics_middleware
from line_bot.config import LineConfig
from line_bot.client import LineReplyClient
from llm.config import LLMConfig
from reminder_worker.config import ReminderConfig
from reminder_worker.dispatcher import ReminderDispatcher
from reminder_worker.scheduler import ReminderScheduler

logging.basicConfig(level=server_config.LOG_LEVEL)
logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    channel_secret: str
    task_repository: TaskRepository
    reminder_scheduler: ReminderScheduler
    reminder_offset_minutes: int
    reply_client: Optional[Any] = None
    ai_assistant: Optional[Any] = None


def build_services(
    line_config: Optional[LineConfig] = None,
    reminder_config: Optional[ReminderConfig] = None,
    server_cfg: Optional[ServerConfig] = None,
    llm_config: Optional[LLMConfig] = None,
) -> AppServices:
    """Wire every collaborator from configuration. Raises ConfigError when LINE settings are missing."""
    line_cfg = line_config or LineConfig()
    line_cfg.validate()
    reminder_cfg = reminder_config or ReminderConfig()
    server_cfg = server_cfg or ServerConfig()
    llm_cfg = llm_config or LLMConfig()

    task_repository = TaskRepository(
        server_cfg.DATABASE_URL,
        enable_offline_fallback=server_cfg.ENABLE_OFFLINE_TASK_REPOSITORY_FALLBACK,
    )

    reminder_dispatcher = ReminderDispatcher(
        api_base_url=line_cfg.API_BASE_URL,
        channel_access_token=line_cfg.CHANNEL_ACCESS_TOKEN,
        closing_phrase=reminder_cfg.CLOSING_PHRASE,
        display_timezone=reminder_cfg.DISPLAY_TIMEZONE,
    )

    reminder_scheduler = ReminderScheduler(
        connection=reminder_cfg.REDIS_URL,
        reminder_dispatcher=reminder_dispatcher,
        queue_name=reminder_cfg.QUEUE_NAME,
        enable_offline_fallback=reminder_cfg.ENABLE_OFFLINE_FALLBACK,
        force_in_memory_mode=reminder_cfg.FORCE_IN_MEMORY_MODE,
    )

    reply_client = None
    ai_assistant = None
    if llm_cfg.enabled:
        from llm.main import TaskAiAssistant

        reply_client = LineReplyClient(line_cfg)
        ai_assistant = TaskAiAssistant(llm_cfg, closing_phrase=reminder_cfg.CLOSING_PHRASE)
    elif llm_cfg.ENABLE_AI_RESPONSES:
        logger.warning("ENABLE_AI_RESPONSES is set but LLM_API_KEY is missing; acknowledgements disabled")

    return AppServices(
        channel_secret=line_cfg.CHANNEL_SECRET,
        task_repository=task_repository,
        reminder_scheduler=reminder_scheduler,
        reminder_offset_minutes=reminder_cfg.DEFAULT_REMINDER_OFFSET_MINUTES,
        reply_client=reply_client,
        ai_assistant=ai_assistant,
    )


def create_app(services: Optional[AppServices] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = services or build_services()
        await asyncio.to_thread(svc.task_repository.connect)
        try:
            await svc.reminder_scheduler.initialize()
        except Exception:
            await asyncio.to_thread(svc.task_repository.disconnect)
            raise
        app.state.services = svc
        logger.info(f"✅ Reminder bot ready (scheduler mode={svc.reminder_scheduler.mode.value})")
        try:
            yield
        finally:
            app.state.services = None
            await svc.reminder_scheduler.shutdown()
            await asyncio.to_thread(svc.task_repository.disconnect)
            logger.info("🛑 Reminder bot stopped")

    # =========================================================
    # FASTAPI APP
    # =========================================================
    app = FastAPI(title="LINE Task Reminder Bot", lifespan=lifespan)

    # Register Prometheus middleware
    app.middleware("http")(metrics_middleware)

    @app.get("/healthz")
    async def healthz(request: Request):
        svc = getattr(request.app.state, "services", None)
        mode = svc.reminder_scheduler.mode.value if svc else None
        return {"status": "ok", "scheduler_mode": mode}

    # Include API Router
    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=server_config.HTTP_PORT)
