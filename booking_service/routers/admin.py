"""
Administrative endpoints.

All routes require the X-Admin-Key header. They let an operator inspect
stored webhook events and re-run reconciliation once the cause of a
failure (a Square outage, a late booking record) has been fixed.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..dependencies import get_webhook_service, require_admin
from ..models.webhook_event import WebhookEventStatus
from ..schemas.admin import ReconciliationResponse, WebhookEventResponse
from ..services.reconciliation import ReconciliationResult
from ..services.webhook_service import WebhookService

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)]
)


def _result_response(result: ReconciliationResult) -> ReconciliationResponse:
    return ReconciliationResponse(
        outcome=result.outcome.value,
        record_id=result.record_id,
        field=result.field,
        status=result.status,
        error=result.error
    )


@router.get("/events", response_model=List[WebhookEventResponse])
async def list_webhook_events(
    status_filter: Optional[WebhookEventStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    service: WebhookService = Depends(get_webhook_service)
):
    """Most recent webhook events first, optionally filtered by status"""
    return service.list_events(status_filter.value if status_filter else None, limit)


@router.post("/events/{event_log_id}/replay", response_model=ReconciliationResponse)
async def replay_webhook_event(
    event_log_id: str,
    service: WebhookService = Depends(get_webhook_service)
):
    try:
        result = await service.replay(event_log_id)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _result_response(result)


@router.post("/bookings/{booking_id}/reconcile", response_model=ReconciliationResponse)
async def reconcile_booking(
    booking_id: str,
    service: WebhookService = Depends(get_webhook_service)
):
    """Re-run payment reconciliation for a booking by its payment link"""
    result = await service.reconcile_booking(booking_id)
    return _result_response(result)
