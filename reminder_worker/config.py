import os
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
from dotenv import load_dotenv

from server.config import env_flag, env_int

from .scheduler_config import (
    DEFAULT_QUEUE_NAME,
    DEFAULT_REMINDER_OFFSET_MINUTES,
    DEFAULT_CLOSING_PHRASE,
    DEFAULT_DISPLAY_TIMEZONE,
    REDIS_CONNECT_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

current_file_path = Path(__file__).resolve()
root_dir = current_file_path.parent.parent
env_path = root_dir / ".env.dev"

if env_path.exists():
    load_dotenv(dotenv_path=env_path, override=True)
else:
    load_dotenv()


class ReminderConfig:
    def __init__(
        self,
        redis_url: Optional[str] = None,
        queue_name: Optional[str] = None,
        default_reminder_offset_minutes: Optional[int] = None,
        enable_offline_fallback: Optional[bool] = None,
        force_in_memory_mode: Optional[bool] = None,
        closing_phrase: Optional[str] = None,
        display_timezone: Optional[str] = None,
    ) -> None:
        self.REDIS_URL = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.QUEUE_NAME = queue_name or os.getenv("REMINDER_QUEUE_NAME", DEFAULT_QUEUE_NAME)
        self.DEFAULT_REMINDER_OFFSET_MINUTES = (
            default_reminder_offset_minutes
            if default_reminder_offset_minutes is not None
            else env_int("DEFAULT_REMINDER_OFFSET_MINUTES", DEFAULT_REMINDER_OFFSET_MINUTES)
        )
        self.ENABLE_OFFLINE_FALLBACK = (
            enable_offline_fallback
            if enable_offline_fallback is not None
            else env_flag("ENABLE_OFFLINE_REMINDER_SCHEDULER_FALLBACK")
        )
        self.FORCE_IN_MEMORY_MODE = (
            force_in_memory_mode
            if force_in_memory_mode is not None
            else env_flag("FORCE_IN_MEMORY_REMINDERS")
        )
        self.CLOSING_PHRASE = closing_phrase or os.getenv("REMINDER_CLOSING_PHRASE", DEFAULT_CLOSING_PHRASE)
        self.DISPLAY_TIMEZONE = display_timezone or os.getenv("REMINDER_DISPLAY_TIMEZONE", DEFAULT_DISPLAY_TIMEZONE)


class RedisConnectionOptions:
    """Connection parameters for the durable job store, parsed from a redis URL."""

    def __init__(
        self,
        host: str,
        port: int = 6379,
        db: int = 0,
        username: Optional[str] = None,
        password: Optional[str] = None,
        tls: bool = False,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.username = username
        self.password = password
        self.tls = tls

    def as_connect_args(self) -> dict:
        """Keyword arguments for ``redis.Redis`` other than ``db``."""
        args = {
            "host": self.host,
            "port": self.port,
            "socket_connect_timeout": REDIS_CONNECT_TIMEOUT_SECONDS,
        }
        if self.username:
            args["username"] = self.username
        if self.password:
            args["password"] = self.password
        if self.tls:
            args["ssl"] = True
        return args

    def __repr__(self) -> str:
        return (
            f"RedisConnectionOptions(host={self.host!r}, port={self.port}, db={self.db}, "
            f"tls={self.tls}, auth={'yes' if self.password else 'no'})"
        )


def build_redis_connection_options(redis_url: str) -> RedisConnectionOptions:
    parsed = urlparse(redis_url or "")
    if parsed.scheme not in ("redis", "rediss"):
        raise ValueError(f"Unsupported redis URL scheme: {parsed.scheme or '<none>'}")
    if not parsed.hostname:
        raise ValueError("Redis URL is missing a host")

    # .port raises ValueError on out of range / non-numeric ports
    port = parsed.port or 6379

    db = 0
    path = parsed.path.lstrip("/")
    if path:
        try:
            db = int(path)
        except ValueError:
            logger.warning(f"Ignoring non-numeric redis db {path!r}")

    options = RedisConnectionOptions(
        host=parsed.hostname,
        port=port,
        db=db,
        username=parsed.username or None,
        password=parsed.password or None,
        tls=parsed.scheme == "rediss",
    )
    logger.info(f"Parsed redis connection: {options}")
    return options


config = ReminderConfig()
