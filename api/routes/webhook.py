"""Webhook route for GitHub push events."""
from __future__ import annotations

import os
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Request
from loguru import logger
from pydantic import ValidationError

from api.auth import is_ip_allowed, verify_signature
from api.schemas import WebhookResponse
from core.metrics import WEBHOOK_COUNTER
from core.schemas import PushPayload, is_ping

router = APIRouter()


@router.post("/webhook", response_model=WebhookResponse)
async def webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_hub_signature_256: Optional[str] = Header(None),
):
    """Authenticate a push webhook and queue its dispatch.

    The dispatch runs as a background task; its outcome is logged and never
    reported back to the webhook sender.
    """
    dispatcher = request.app.state.dispatcher
    config = dispatcher.store.current

    client_host = request.client.host if request.client else None
    if not is_ip_allowed(client_host, config.allowed_networks):
        logger.warning(f"Rejected webhook from disallowed address {client_host}")
        raise HTTPException(status_code=403, detail="Address not allowed")

    body = await request.body()
    secret = os.getenv("GITHUB_WEBHOOK_SECRET")
    if not verify_signature(body, x_hub_signature_256, secret):
        raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        payload: Any = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Body is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")

    if is_ping(payload):
        logger.info("Received webhook ping")
        return {"status": "pong"}

    try:
        event = PushPayload.model_validate(payload).to_event()
    except ValidationError as e:
        logger.warning(f"Rejected malformed push payload: {e}")
        raise HTTPException(status_code=422, detail="Payload is not a push event")

    WEBHOOK_COUNTER.inc()
    logger.info(f"Queued dispatch for {event.full_name} {event.sha_range}")
    background_tasks.add_task(dispatcher.dispatch, event)
    return {"status": "accepted"}
