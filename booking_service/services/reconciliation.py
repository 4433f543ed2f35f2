"""
Reconciliation Handler

Maps a verified Square event onto the local booking records.

Only payment.updated changes local state. Which state it changes is a
per-process choice (ReconciliationStrategy):

- ORDER_STATE_SYNC: read the order behind the payment link, mark it and
  every fulfillment COMPLETED, write it back to Square (guarded by the
  order version) and store the resulting order state in order_status.
- PAYMENT_STATUS_SYNC: read the payment and store its status in
  payment_status.

Expected failures (no matching record, Square errors) come back as a
ReconciliationResult rather than an exception so the webhook layer can
decide the HTTP answer.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from ..errors import GatewayError
from ..models.booking_record import BookingRecord
from ..schemas.events import PaymentUpdatedEvent, WebhookEvent
from ..utils.keyed_lock import KeyedLock, booking_lock_key
from ..utils.logging_config import get_logger
from .booking_store import BookingRecordStore
from .square_client import SquareClient

logger = get_logger(__name__)

COMPLETED = "COMPLETED"


class ReconciliationStrategy(str, enum.Enum):
    ORDER_STATE_SYNC = "order_state_sync"
    PAYMENT_STATUS_SYNC = "payment_status_sync"

    @classmethod
    def from_setting(cls, value: str) -> "ReconciliationStrategy":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown reconciliation strategy '{value}', "
                f"expected one of: {', '.join(s.value for s in cls)}"
            )


class ReconciliationOutcome(str, enum.Enum):
    APPLIED = "applied"
    IGNORED = "ignored"
    NOT_FOUND = "not_found"
    GATEWAY_ERROR = "gateway_error"


@dataclass
class ReconciliationResult:
    outcome: ReconciliationOutcome
    record_id: Optional[str] = None
    field: Optional[str] = None  # order_status | payment_status
    status: Optional[str] = None  # value persisted
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome in (ReconciliationOutcome.APPLIED, ReconciliationOutcome.IGNORED)


class ReconciliationHandler:
    def __init__(
        self,
        store: BookingRecordStore,
        gateway: SquareClient,
        locks: KeyedLock,
        strategy: ReconciliationStrategy = ReconciliationStrategy.ORDER_STATE_SYNC
    ):
        self.store = store
        self.gateway = gateway
        self.locks = locks
        self.strategy = strategy

    async def handle(self, event: WebhookEvent) -> ReconciliationResult:
        if not isinstance(event, PaymentUpdatedEvent):
            return ReconciliationResult(outcome=ReconciliationOutcome.IGNORED)
        return await self.handle_payment_updated(event)

    async def handle_payment_updated(self, event: PaymentUpdatedEvent) -> ReconciliationResult:
        record = self.store.get_by_payment_link_id(event.id)
        if record is None:
            logger.warning(f"payment.updated for unknown payment link {event.id}")
            return ReconciliationResult(
                outcome=ReconciliationOutcome.NOT_FOUND,
                error=f"No booking record for payment link {event.id}"
            )

        async with self.locks.hold(booking_lock_key(record.booking_id)):
            # Re-read under the lock; another event may have just written it
            self.store.db.refresh(record)
            try:
                if self.strategy == ReconciliationStrategy.PAYMENT_STATUS_SYNC:
                    return await self._sync_payment_status(record, event.id)
                return await self._sync_order_state(record)
            except GatewayError as e:
                logger.error(f"Reconciliation of booking {record.booking_id} failed: {e} {e.errors}")
                return ReconciliationResult(
                    outcome=ReconciliationOutcome.GATEWAY_ERROR,
                    record_id=record.id,
                    error=str(e)
                )

    async def _sync_order_state(self, record: BookingRecord) -> ReconciliationResult:
        if not record.order_id:
            return ReconciliationResult(
                outcome=ReconciliationOutcome.NOT_FOUND,
                record_id=record.id,
                error=f"Booking {record.booking_id} has no order to reconcile"
            )

        order = await self.gateway.retrieve_order(record.order_id)
        completed = complete_order(order)

        update = {
            "location_id": completed.get("location_id"),
            "version": completed.get("version"),
            "state": completed["state"],
            "fulfillments": [
                {"uid": f.get("uid"), "state": f["state"]}
                for f in completed.get("fulfillments", [])
            ],
        }
        updated = await self.gateway.update_order(record.order_id, update)
        new_status = updated.get("state") or completed["state"]

        return self._persist(record, "order_status", new_status)

    async def _sync_payment_status(self, record: BookingRecord, payment_id: str) -> ReconciliationResult:
        payment = await self.gateway.get_payment(payment_id)
        new_status = payment.get("status")
        if not new_status:
            raise GatewayError(f"Payment {payment_id} has no status", status_code=200)
        return self._persist(record, "payment_status", new_status)

    def _persist(self, record: BookingRecord, field: str, new_status: str) -> ReconciliationResult:
        old_status = getattr(record, field)
        self.store.update_fields(record.id, **{field: new_status})
        logger.booking_status_changed(record.booking_id, field, old_status, new_status)
        return ReconciliationResult(
            outcome=ReconciliationOutcome.APPLIED,
            record_id=record.id,
            field=field,
            status=new_status
        )


def complete_order(order: dict) -> dict:
    """Copy of `order` with the order and each fulfillment marked COMPLETED."""
    completed = dict(order)
    completed["fulfillments"] = [
        {**fulfillment, "state": COMPLETED}
        for fulfillment in order.get("fulfillments") or []
    ]
    completed["state"] = COMPLETED
    return completed
