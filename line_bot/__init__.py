from .config import LineConfig, ConfigError
from .client import LineApiError, LineReplyClient
from .security import validate_signature
from .webhook import WebhookDependencies, handle_webhook, build_reminder_request, transform_text_to_task
