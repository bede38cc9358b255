"""
WhatsApp Cloud API delivery.

Sends a scheduled word either as the approved message template or as
formatted free text via POST /{version}/{phone_number_id}/messages.
"""

import re
from dataclasses import dataclass
from typing import Any

import httpx

from glintup.config import WhatsAppConfig, get_config
from glintup.core.errors import (
    ConfigurationError,
    PermanentDeliveryError,
    TransientDeliveryError,
    classify_status_code,
)
from glintup.core.logging import get_logger

logger = get_logger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com"
PROVIDER = "whatsapp"

E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")
_SEPARATORS = re.compile(r"[\s\-().]")


@dataclass
class SendResult:
    """Accepted send reported by a provider."""

    provider: str
    provider_message_id: str | None
    recipient: str
    status: str = "sent"


def normalize_phone(number: str | None) -> str | None:
    """Strip visual separators and return the number if it is E.164."""
    if not number:
        return None
    cleaned = _SEPARATORS.sub("", number)
    return cleaned if E164_PATTERN.match(cleaned) else None


def format_word_message(payload: dict[str, Any]) -> str:
    """Free-text rendering of a scheduled word."""
    category = str(payload.get("category") or "general").upper()
    lines = [f"📚 DAILY-{category}", "", f"*{str(payload['word']).upper()}*"]
    if payload.get("part_of_speech"):
        lines.append(f"_{payload['part_of_speech']}_")
    lines += ["", "📖 *Definition:*", payload["definition"], "", "💡 *Example:*", payload["example"]]
    if payload.get("memory_hook"):
        lines += ["", "🧠 *Memory hook:*", payload["memory_hook"]]
    if payload.get("position") and payload.get("total_words"):
        lines += ["", f"📊 Word {payload['position']} of {payload['total_words']} for today"]
    return "\n".join(lines)


def build_template_components(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """Body parameters for the vocabulary template, in template order."""
    values = [
        payload.get("first_name") or "there",
        payload["word"],
        payload.get("part_of_speech") or "-",
        payload["definition"],
        payload["example"],
        payload.get("memory_hook") or "-",
    ]
    return [
        {
            "type": "body",
            "parameters": [{"type": "text", "text": str(v)} for v in values],
        }
    ]


class WhatsAppProvider:
    """Delivery provider for the WhatsApp Cloud API."""

    name = PROVIDER

    def __init__(
        self,
        config: WhatsAppConfig | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        app_config = get_config()
        self.config = config or app_config.whatsapp
        self.timeout = timeout or app_config.settings.provider_timeout_seconds
        self._client = client

    def build_message(self, to: str, payload: dict[str, Any]) -> dict[str, Any]:
        body: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to.lstrip("+"),
        }
        if self.config.use_template:
            body["type"] = "template"
            body["template"] = {
                "name": self.config.template_name,
                "language": {"code": self.config.language},
                "components": build_template_components(payload),
            }
        else:
            body["type"] = "text"
            body["text"] = {"preview_url": False, "body": format_word_message(payload)}
        return body

    async def _post(self, url: str, headers: dict[str, str], body: dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, headers=headers, json=body, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, headers=headers, json=body)

    async def send(self, to: str | None, payload: dict[str, Any]) -> SendResult:
        """
        Send one word to a phone number.

        Raises:
            PermanentDeliveryError: Invalid number or a provider 4xx
            TransientDeliveryError: Timeout, network error, 429 or 5xx
            ConfigurationError: Missing token or phone number id
        """
        phone = normalize_phone(to)
        if phone is None:
            raise PermanentDeliveryError(
                f"not an E.164 phone number: {to!r}", provider=PROVIDER, reason="invalid-target"
            )
        if not self.config.token or not self.config.phone_number_id:
            raise ConfigurationError("WhatsApp token or phone number id is not configured")

        url = f"{GRAPH_API_BASE}/{self.config.api_version}/{self.config.phone_number_id}/messages"
        headers = {"Authorization": f"Bearer {self.config.token}"}

        try:
            resp = await self._post(url, headers, self.build_message(phone, payload))
        except httpx.TimeoutException as e:
            raise TransientDeliveryError(
                f"WhatsApp request timed out: {e}", provider=PROVIDER, reason="timeout"
            ) from e
        except httpx.RequestError as e:
            raise TransientDeliveryError(
                f"WhatsApp request failed: {e}", provider=PROVIDER, reason="network-error"
            ) from e

        if resp.status_code >= 400:
            try:
                detail = resp.json()
            except ValueError:
                detail = resp.text[:500]
            message = "WhatsApp API error"
            if isinstance(detail, dict):
                message = detail.get("error", {}).get("message", message)
            logger.bind(status=resp.status_code, recipient=phone, detail=str(detail)[:300]).warning(
                "whatsapp_send_rejected"
            )
            raise classify_status_code(resp.status_code, message, provider=PROVIDER, detail=detail)

        # Accepted by the provider: a body we cannot read must not trigger a resend
        message_id = None
        try:
            data = resp.json()
        except ValueError:
            logger.bind(status=resp.status_code, body=resp.text[:200]).warning(
                "whatsapp_response_unreadable"
            )
            data = None
        if isinstance(data, dict):
            messages = data.get("messages") or [{}]
            if isinstance(messages, list) and messages and isinstance(messages[0], dict):
                message_id = messages[0].get("id")
        logger.bind(recipient=phone, message_id=message_id).info("whatsapp_message_sent")
        return SendResult(provider=PROVIDER, provider_message_id=message_id, recipient=phone)
