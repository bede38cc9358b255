"""Subscriber delivery settings endpoints."""

import uuid

from fastapi import APIRouter, HTTPException, status

from glintup.dependencies import DBSession
from glintup.schemas.settings import DeliverySettingsResponse, DeliverySettingsUpdate
from glintup.services.delivery_settings import (
    build_settings_response,
    ensure_delivery_settings,
    get_subscriber,
    update_delivery_settings,
)

router = APIRouter()


@router.get(
    "/subscribers/{subscriber_id}/delivery-settings",
    response_model=DeliverySettingsResponse,
)
async def read_delivery_settings(subscriber_id: uuid.UUID, db: DBSession) -> DeliverySettingsResponse:
    """Current settings and the send times they produce today."""
    subscriber = await get_subscriber(db, subscriber_id)
    if subscriber is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscriber not found")
    await ensure_delivery_settings(db, subscriber)
    return build_settings_response(subscriber)


@router.put(
    "/subscribers/{subscriber_id}/delivery-settings",
    response_model=DeliverySettingsResponse,
)
async def replace_delivery_settings(
    subscriber_id: uuid.UUID,
    body: DeliverySettingsUpdate,
    db: DBSession,
) -> DeliverySettingsResponse:
    """
    Replace settings. Invalid input is rejected with 422, never corrected.
    """
    subscriber = await get_subscriber(db, subscriber_id)
    if subscriber is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscriber not found")
    subscriber = await update_delivery_settings(db, subscriber, body)
    return build_settings_response(subscriber)
