"""Gateway webhook endpoints."""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, Path, Request, status

from fee_engine.api.dependencies import AppSettings, Listener
from fee_engine.api.schemas import ErrorResponse, WebhookAck
from fee_engine.gateways.base import GatewayCallback
from fee_engine.models.enums import GatewayCategory
from fee_engine.services.webhook_signature import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/{category}",
    response_model=WebhookAck,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def receive_webhook(
    request: Request,
    settings: AppSettings,
    listener: Listener,
    category: Annotated[GatewayCategory, Path()],
    signature: Annotated[str | None, Header(alias="X-Signature")] = None,
) -> WebhookAck:
    """Accept a signed gateway callback and queue it for processing."""
    body = await request.body()
    if not verify_signature(body, signature, settings.webhook_secret):
        logger.warning("Rejected %s webhook with invalid signature", category.value)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body must be a JSON object")

    try:
        callback = GatewayCallback.from_payload(category, payload)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    await listener.enqueue(callback)
    logger.info("Queued %s callback for intent %s", category.value, callback.intent_id)
    return WebhookAck(intent_id=callback.intent_id)
