import asyncio
from pathlib import Path
from typing import Any

import requests
import resend
from jinja2 import Environment, FileSystemLoader
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from resend.exceptions import ResendError

from glintup.config import get_settings
from glintup.core.errors import (
    ConfigurationError,
    PermanentDeliveryError,
    TransientDeliveryError,
    classify_status_code,
)
from glintup.core.logging import get_logger
from glintup.services.whatsapp_service import SendResult

logger = get_logger(__name__)

PROVIDER = "email"

_email_adapter = TypeAdapter(EmailStr)

# Initialize Jinja2 environment for email templates
template_dir = Path(__file__).parent.parent / "emails" / "templates"
jinja_env = Environment(loader=FileSystemLoader(template_dir), autoescape=True)


def _init_resend() -> None:
    """Initialize Resend API with API key."""
    settings = get_settings()
    if settings.resend_api_key:
        resend.api_key = settings.resend_api_key


def render_word_email(payload: dict[str, Any]) -> tuple[str, str]:
    """Return (subject, html) for a scheduled word."""
    subject = f"Your word of the moment: {payload['word']}"
    try:
        template = jinja_env.get_template("vocab_word.html")
        html = template.render(**payload)
    except Exception as e:
        logger.bind(error=str(e)).warning("email_template_error")
        # Fallback to simple HTML if template not found
        html = f"""
        <html>
        <body style="font-family: sans-serif; padding: 20px;">
            <h2>{payload['word']}</h2>
            <p><strong>Definition:</strong> {payload['definition']}</p>
            <p><strong>Example:</strong> <em>{payload['example']}</em></p>
        </body>
        </html>
        """
    return subject, html


def _status_code(error: ResendError) -> int | None:
    try:
        return int(getattr(error, "code", None))
    except (TypeError, ValueError):
        return None


class EmailProvider:
    """Delivery provider for transactional email through Resend."""

    name = PROVIDER

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout or get_settings().provider_timeout_seconds

    async def send_email(self, to: str, subject: str, html: str) -> SendResult:
        """
        Send one email.

        Raises:
            PermanentDeliveryError: Invalid address or a provider 4xx
            TransientDeliveryError: Timeout, network error, 429 or 5xx
            ConfigurationError: Missing API key
        """
        try:
            to = _email_adapter.validate_python(to)
        except PydanticValidationError as e:
            raise PermanentDeliveryError(
                f"not an email address: {to!r}", provider=PROVIDER, reason="invalid-target"
            ) from e

        settings = get_settings()
        if not settings.resend_api_key:
            raise ConfigurationError("RESEND_API_KEY is not set")
        _init_resend()

        params: dict[str, Any] = {
            "from": f"Glintup <words@{settings.email_domain}>",
            "to": [to],
            "subject": subject,
            "html": html,
        }

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(resend.Emails.send, params), timeout=self.timeout
            )
        except TimeoutError as e:
            raise TransientDeliveryError(
                "Resend request timed out", provider=PROVIDER, reason="timeout"
            ) from e
        except ResendError as e:
            code = _status_code(e)
            logger.bind(recipient=to, code=code, error=str(e)).warning("email_send_rejected")
            if code is None:
                raise PermanentDeliveryError(
                    str(e), provider=PROVIDER, reason="provider-rejected"
                ) from e
            raise classify_status_code(code, str(e), provider=PROVIDER) from e
        except requests.RequestException as e:
            logger.bind(recipient=to, error=str(e)).warning("email_send_network_error")
            raise TransientDeliveryError(
                f"Resend request failed: {e}", provider=PROVIDER, reason="network-error"
            ) from e

        message_id = response.get("id") if isinstance(response, dict) else None
        logger.bind(recipient=to, message_id=message_id).info("email_sent")
        return SendResult(provider=PROVIDER, provider_message_id=message_id, recipient=to)

    async def send(self, to: str | None, payload: dict[str, Any]) -> SendResult:
        subject, html = render_word_email(payload)
        return await self.send_email(to or "", subject, html)
