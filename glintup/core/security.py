import hashlib
import hmac

from glintup.config import get_settings


def verify_admin_token(token: str | None) -> bool:
    """Constant-time check of the operator token. Always False when unset."""
    expected = get_settings().admin_api_token
    if not expected or not token:
        return False
    return hmac.compare_digest(expected, token)


def sign_webhook_payload(secret: str, body: bytes) -> str:
    """Compute the X-Hub-Signature-256 header value for a payload."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_webhook_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Verify a Meta webhook signature header against the raw body."""
    if not signature:
        return False
    return hmac.compare_digest(sign_webhook_payload(secret, body), signature)
