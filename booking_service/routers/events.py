"""
Webhook + live update endpoints.

POST /api/events receives Square notifications. Acknowledgement policy:
- signature mismatch          -> 404 "Signature doesn't match", nothing stored
- applied / ignored           -> 200 {"ok": true}
- no matching booking record  -> 200 {"ok": false, "error": "not_found"}
  (redelivery cannot fix it; the event stays FAILED for an admin re-run)
- Square unavailable / errors -> 502 {"ok": false, "error": "gateway_error"}
  so Square redelivers

GET /ws streams published events to browser clients.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, WebSocket
from fastapi.responses import JSONResponse

from ..config import Settings, get_settings
from ..dependencies import get_webhook_service
from ..schemas.events import WebhookAck
from ..services.reconciliation import ReconciliationOutcome
from ..services.signature import SIGNATURE_HEADER, build_notification_url
from ..services.webhook_service import WebhookService, ack_body
from ..utils.rate_limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["Webhooks"])
live_router = APIRouter(tags=["Live updates"])


@router.post("", response_model=WebhookAck)
@limiter.exempt
async def receive_event(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
    settings: Settings = Depends(get_settings)
):
    """
    Catch all Square webhook events, reconcile, and send them to live clients.
    """
    raw_body = await request.body()
    notification_url = build_notification_url(
        request.headers.get("host", ""),
        request.url.path,
        settings.webhook_notification_url
    )

    result = await service.receive(raw_body, notification_url, request.headers.get(SIGNATURE_HEADER))

    status_code = 502 if result.outcome == ReconciliationOutcome.GATEWAY_ERROR else 200
    return JSONResponse(status_code=status_code, content=ack_body(result))


@live_router.websocket("/ws")
async def live_events(websocket: WebSocket, types: Optional[str] = None):
    """
    Push published events to a browser. `types` is a comma-separated list of
    event types; omit it to receive everything.
    """
    dispatcher = websocket.app.state.dispatcher
    # Subscribe before accepting so nothing published after the handshake is missed
    sub_id, queue = dispatcher.subscribe(types.split(",") if types else None)
    await websocket.accept()

    async def pump():
        while True:
            message = await queue.get()
            await websocket.send_json(message)

    async def listen():
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    tasks = [asyncio.create_task(pump()), asyncio.create_task(listen())]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task.exception():
                logger.info(f"Live subscriber {sub_id} closed: {task.exception()}")
    finally:
        for task in tasks:
            task.cancel()
        dispatcher.unsubscribe(sub_id)
