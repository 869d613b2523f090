from typing import Any, Optional
import logging
import openai
from .prompt import STATIC_SYSTEM_INSTRUCTION
from .config import LLMConfig

logger = logging.getLogger(__name__)


class TaskAiAssistant:
    """Short generative acknowledgement for a freshly created task."""

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        closing_phrase: str = "",
        client: Optional[Any] = None,
    ) -> None:
        cfg = config or LLMConfig()
        self.model = cfg.MODEL
        self.system_prompt = STATIC_SYSTEM_INSTRUCTION.format(closing_phrase=closing_phrase)
        self.client = client or openai.OpenAI(api_key=cfg.API_KEY, base_url=cfg.BASE_URL)

    def generate_acknowledgement(self, original_message: str, user_id: str) -> str:
        prompt = f'User ({user_id}) said: "{original_message}".'
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.system_prompt},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=80,
            )
        except Exception as e:
            logger.error(f"LLM acknowledgement failed: {e}")
            raise

        text = (response.choices[0].message.content or "").strip()
        logger.info(f"LLM acknowledgement: {text}")
        return text
