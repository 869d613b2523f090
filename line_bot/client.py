import json
import logging
from typing import Any, Mapping, Optional
import requests
from .config import LineConfig

# Setup logger
logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 15


class LineApiError(Exception):
    """Raised when the LINE Messaging API answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "", endpoint: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.endpoint = endpoint
        super().__init__(f"LINE request to {endpoint or 'api'} failed with status {status_code}: {body[:200]}")


def _headers(access_token: str) -> Mapping[str, str]:
    return {
        "Content-type": "application/json",
        "Authorization": f"Bearer {access_token}",
    }


def text_messages(text: str) -> list:
    return [{"type": "text", "text": text}]


def post_line_api(
    url: str,
    payload: Mapping[str, Any],
    access_token: str,
    http_client: Optional[Any] = None,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
) -> None:
    """
    POST a JSON payload to a LINE endpoint.

    Transport errors from ``requests`` propagate unchanged; a non-2xx
    answer is raised as ``LineApiError`` carrying the status code.
    """
    client = http_client or requests
    resp = client.post(
        url,
        data=json.dumps(payload),
        headers=_headers(access_token),
        timeout=timeout,
    )
    if not 200 <= resp.status_code < 300:
        raise LineApiError(resp.status_code, resp.text or "", endpoint=url)


class LineReplyClient:
    """Sends reply messages for a webhook event's replyToken."""

    def __init__(self, config: Optional[LineConfig] = None, http_client: Optional[Any] = None) -> None:
        cfg = config or LineConfig()
        self.api_base_url = cfg.API_BASE_URL.rstrip("/")
        self.access_token = cfg.CHANNEL_ACCESS_TOKEN
        self.http_client = http_client

    def reply_with_text(self, reply_token: str, text: str) -> None:
        payload = {"replyToken": reply_token, "messages": text_messages(text)}
        try:
            post_line_api(
                f"{self.api_base_url}/v2/bot/message/reply",
                payload,
                self.access_token,
                http_client=self.http_client,
            )
        except (LineApiError, requests.RequestException) as e:
            logger.error(f"LINE reply failed: {e}")
            raise
        logger.info("LINE reply sent")
