import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

from server.config import env_flag

current_file_path = Path(__file__).resolve()
root_dir = current_file_path.parent.parent
env_path = root_dir / ".env.dev"

if env_path.exists():
    load_dotenv(dotenv_path=env_path, override=True)
else:
    load_dotenv()


class LLMConfig:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        enable_ai_responses: Optional[bool] = None,
    ) -> None:
        self.API_KEY = api_key or os.getenv("LLM_API_KEY")
        self.MODEL = model or os.getenv("LLM_MODEL", "gemini-1.5-flash")
        self.BASE_URL = base_url or os.getenv(
            "LLM_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/"
        )
        if enable_ai_responses is None:
            enable_ai_responses = env_flag("ENABLE_AI_RESPONSES")
        self.ENABLE_AI_RESPONSES = enable_ai_responses

    @property
    def enabled(self) -> bool:
        return bool(self.ENABLE_AI_RESPONSES and self.API_KEY)

config = LLMConfig()
