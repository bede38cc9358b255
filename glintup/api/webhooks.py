"""WhatsApp Cloud API webhook: verification handshake and status callbacks."""

import json

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse

from glintup.core.logging import get_logger
from glintup.core.security import verify_webhook_signature
from glintup.dependencies import AppSettings, DBSession
from glintup.services.webhook_status import record_whatsapp_statuses

logger = get_logger(__name__)

router = APIRouter()


@router.get("/whatsapp", response_class=PlainTextResponse)
async def verify_whatsapp_webhook(
    settings: AppSettings,
    hub_mode: str | None = Query(default=None, alias="hub.mode"),
    hub_verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(default=None, alias="hub.challenge"),
) -> str:
    """Echo Meta's challenge when the verify token matches."""
    if (
        hub_mode == "subscribe"
        and settings.whatsapp_verify_token
        and hub_verify_token == settings.whatsapp_verify_token
    ):
        logger.info("whatsapp_webhook_verified")
        return hub_challenge or ""

    logger.bind(mode=hub_mode).warning("whatsapp_webhook_verification_failed")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


@router.post("/whatsapp")
async def receive_whatsapp_webhook(
    request: Request,
    db: DBSession,
    settings: AppSettings,
) -> dict[str, str | int]:
    """
    Record message status callbacks.

    Malformed bodies are acknowledged and dropped so the provider stops
    redelivering them; a bad signature is rejected.
    """
    body = await request.body()

    if settings.whatsapp_app_secret:
        signature = request.headers.get("X-Hub-Signature-256")
        if not verify_webhook_signature(settings.whatsapp_app_secret, body, signature):
            logger.warning("whatsapp_webhook_bad_signature")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.bind(size=len(body)).warning("whatsapp_webhook_malformed")
        return {"status": "ignored"}

    if not isinstance(payload, dict):
        logger.warning("whatsapp_webhook_malformed")
        return {"status": "ignored"}

    recorded = await record_whatsapp_statuses(db, payload)
    return {"status": "ok", "recorded": recorded}
