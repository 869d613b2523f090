import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from line_bot.webhook import WebhookDependencies, handle_webhook
from server.dependencies import get_webhook_dependencies

logger = logging.getLogger(__name__)

router = APIRouter()

# =========================================================
# LINE WEBHOOK
# =========================================================
@router.post("/webhook")
async def line_webhook_receive(
    request: Request,
    deps: WebhookDependencies = Depends(get_webhook_dependencies),
) -> JSONResponse:
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    content, status = await handle_webhook(raw_body, headers, deps)
    logger.info(f"LINE webhook handled: status={status} content={content}")
    return JSONResponse(content, status_code=status)
