"""
Webhook Service

Runs one Square notification through the whole pipeline:

1. Verify the signature over the raw body (SignatureMismatch otherwise)
2. Parse the body into a known event variant
3. Log the event in webhook_event_logs
4. Reconcile local state (ReconciliationHandler)
5. Publish the original body to live subscribers, exactly once,
   whatever the reconciliation outcome

Also hosts the administrative re-runs: replaying a stored event and
re-reconciling a booking by its payment link.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from ..errors import ReconciliationNotFound, SignatureMismatch, ValidationError
from ..models.webhook_event import WebhookEventLog, WebhookEventStatus
from ..schemas.events import PAYMENT_UPDATED, WebhookEvent, parse_event
from .dispatcher import EventDispatcher
from .reconciliation import ReconciliationHandler, ReconciliationOutcome, ReconciliationResult
from .signature import verify_signature

logger = logging.getLogger(__name__)


OUTCOME_TO_STATUS = {
    ReconciliationOutcome.APPLIED: WebhookEventStatus.PROCESSED,
    ReconciliationOutcome.IGNORED: WebhookEventStatus.IGNORED,
    ReconciliationOutcome.NOT_FOUND: WebhookEventStatus.FAILED,
    ReconciliationOutcome.GATEWAY_ERROR: WebhookEventStatus.FAILED,
}


class WebhookService:
    def __init__(
        self,
        db: Session,
        handler: ReconciliationHandler,
        dispatcher: EventDispatcher,
        signature_key: str,
        request_id: Optional[str] = None
    ):
        self.db = db
        self.handler = handler
        self.dispatcher = dispatcher
        self.signature_key = signature_key
        self.request_id = request_id or "no-request-id"

    def verify(self, notification_url: str, signature: Optional[str], raw_body: bytes) -> None:
        if not verify_signature(self.signature_key, notification_url, signature, raw_body):
            logger.warning(f"[{self.request_id}] Webhook signature mismatch for {notification_url}")
            raise SignatureMismatch()

    async def receive(
        self,
        raw_body: bytes,
        notification_url: str,
        signature: Optional[str]
    ) -> ReconciliationResult:
        """Verify, reconcile, then publish. Raises SignatureMismatch / ValidationError."""
        self.verify(notification_url, signature, raw_body)

        try:
            body = json.loads(raw_body)
        except ValueError:
            raise ValidationError("Webhook body is not valid JSON")
        event = parse_event(body)

        event_log = self._log_event(event, raw_body)
        try:
            result = await self.handler.handle(event)
            self._record_result(event_log, result)
        except Exception as e:
            self._record_failure(event_log, e)
            raise
        finally:
            self.dispatcher.publish(event.type, body)

        logger.info(
            f"[{self.request_id}] Webhook {event.type} id={getattr(event, 'id', None)} "
            f"-> {result.outcome.value}"
        )
        return result

    # ==================
    # Administrative re-runs
    # ==================

    async def replay(self, event_log_id: str) -> ReconciliationResult:
        """Reconcile a stored event again, e.g. after a gateway outage."""
        event_log = self.db.query(WebhookEventLog).filter(WebhookEventLog.id == event_log_id).first()
        if event_log is None:
            raise LookupError(f"Webhook event {event_log_id} not found")

        body = json.loads(event_log.payload_json)
        event = parse_event(body)
        try:
            result = await self.handler.handle(event)
        except Exception as e:
            self._record_failure(event_log, e)
            raise
        self._record_result(event_log, result)
        self.dispatcher.publish(event.type, body)

        logger.info(f"Replayed webhook event {event_log_id} -> {result.outcome.value}")
        return result

    async def reconcile_booking(self, booking_id: str) -> ReconciliationResult:
        """Re-run payment reconciliation for one booking, independent of any event."""
        record = self.handler.store.get_by_booking_id(booking_id, status=None)
        if record is None or not record.payment_link_id:
            raise ReconciliationNotFound(booking_id)

        body = {"type": PAYMENT_UPDATED, "id": record.payment_link_id}
        result = await self.handler.handle(parse_event(body))
        self.dispatcher.publish(PAYMENT_UPDATED, body)
        return result

    def list_events(self, status: Optional[str] = None, limit: int = 50) -> List[WebhookEventLog]:
        query = self.db.query(WebhookEventLog)
        if status:
            query = query.filter(WebhookEventLog.status == status)
        return query.order_by(WebhookEventLog.received_at.desc()).limit(limit).all()

    # ==================
    # Event log
    # ==================

    def _log_event(self, event: WebhookEvent, raw_body: Union[bytes, str]) -> WebhookEventLog:
        payload_json = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        event_log = WebhookEventLog(
            event_id=event.event_id,
            event_type=event.type,
            correlation_id=getattr(event, "id", None),
            payload_json=payload_json,
            status=WebhookEventStatus.RECEIVED.value,
            received_at=datetime.utcnow()
        )
        self.db.add(event_log)
        self.db.commit()
        return event_log

    def _record_result(self, event_log: WebhookEventLog, result: ReconciliationResult) -> None:
        event_log.status = OUTCOME_TO_STATUS[result.outcome].value
        event_log.attempts = (event_log.attempts or 0) + 1
        event_log.result_action = result.outcome.value
        event_log.result_record_id = result.record_id
        event_log.error_message = result.error[:1000] if result.error else None
        event_log.processed_at = datetime.utcnow()
        self.db.commit()

    def _record_failure(self, event_log: WebhookEventLog, error: Exception) -> None:
        """Mark the event failed when reconciliation raised instead of returning a result."""
        logger.exception(f"[{self.request_id}] Reconciliation of event {event_log.id} raised")
        self.db.rollback()
        event_log.status = WebhookEventStatus.FAILED.value
        event_log.attempts = (event_log.attempts or 0) + 1
        event_log.result_action = "error"
        event_log.result_record_id = None
        event_log.error_message = f"{type(error).__name__}: {error}"[:1000]
        event_log.processed_at = datetime.utcnow()
        self.db.commit()


def ack_body(result: ReconciliationResult) -> Dict[str, Any]:
    if result.success:
        return {"ok": True}
    return {"ok": False, "error": result.outcome.value}
