import os
import logging
from dotenv import load_dotenv
from typing import Optional
from pathlib import Path

logger = logging.getLogger(__name__)

current_file_path = Path(__file__).resolve()
root_dir = current_file_path.parent.parent
env_path = root_dir / ".env.dev"

if env_path.exists():
    load_dotenv(dotenv_path=env_path, override=True)
else:
    load_dotenv()


class ConfigError(Exception):
    pass


class LineConfig:
    def __init__(
        self,
        channel_secret: Optional[str] = None,
        channel_access_token: Optional[str] = None,
        api_base_url: Optional[str] = None,
    ) -> None:
        self.CHANNEL_SECRET = channel_secret or os.getenv("LINE_CHANNEL_SECRET")
        self.CHANNEL_ACCESS_TOKEN = channel_access_token or os.getenv("LINE_CHANNEL_ACCESS_TOKEN")
        self.API_BASE_URL = api_base_url or os.getenv("LINE_API_BASE_URL", "https://api.line.me")

    def validate(self) -> None:
        missing = []
        if not self.CHANNEL_SECRET: missing.append("LINE_CHANNEL_SECRET")
        if not self.CHANNEL_ACCESS_TOKEN: missing.append("LINE_CHANNEL_ACCESS_TOKEN")

        if missing:
            logger.error(f"Missing LINE configuration: {', '.join(missing)}")
            raise ConfigError(f"Missing environment variables: {', '.join(missing)}")
