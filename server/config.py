import os
import logging
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

current_file_path = Path(__file__).resolve()
root_dir = current_file_path.parent.parent
env_path = root_dir / ".env.dev"

if env_path.exists():
    load_dotenv(dotenv_path=env_path, override=True)
else:
    load_dotenv()


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        return int(raw) if raw not in (None, "") else default
    except ValueError:
        logger.warning(f"{name}={raw!r} is not a number, using {default}")
        return default


class ServerConfig:
    def __init__(
        self,
        database_url: Optional[str] = None,
        enable_offline_task_repository_fallback: Optional[bool] = None,
    ) -> None:
        self.DATABASE_URL = database_url or os.getenv("DATABASE_URL", "sqlite:///./tasks.db")
        self.ENABLE_OFFLINE_TASK_REPOSITORY_FALLBACK = (
            enable_offline_task_repository_fallback
            if enable_offline_task_repository_fallback is not None
            else env_flag("ENABLE_OFFLINE_TASK_REPOSITORY_FALLBACK")
        )
        self.HTTP_PORT = env_int("HTTP_PORT", 8080)
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

config = ServerConfig()
