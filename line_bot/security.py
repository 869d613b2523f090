import base64
import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def validate_signature(channel_secret: Optional[str], raw_body: bytes, signature: Optional[str]) -> bool:
    """Check the x-line-signature header: base64(HMAC-SHA256(channel secret, raw body))."""
    if not channel_secret or not signature:
        return False
    expected = base64.b64encode(
        hmac.new(channel_secret.encode("utf-8"), msg=raw_body, digestmod=hashlib.sha256).digest()
    ).decode("ascii")
    if len(expected) != len(signature):
        return False
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))
