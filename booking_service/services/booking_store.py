"""
Booking Record Store

Thin persistence layer over the booking_records table:
- create / find_one / find / update_fields (merge, never replace)
- customer-facing lookups filter on status, reconciliation lookups don't
- raw booking snapshot and service names are written as a pair
"""

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.booking_record import BookingRecord, BookingRecordStatus

logger = logging.getLogger(__name__)


UPDATABLE_FIELDS = {
    "email",
    "customer_id",
    "order_id",
    "order_status",
    "payment_link_id",
    "payment_status",
    "status",
    "raw_booking",
    "service_names",
}

SNAPSHOT_FIELDS = {"raw_booking", "service_names"}


def dump_raw_booking(booking: Dict[str, Any]) -> str:
    """Serialize a booking payload. Python ints are unbounded so large ids survive."""
    return json.dumps(booking, separators=(",", ":"), ensure_ascii=False)


def load_raw_booking(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    return json.loads(raw)


class BookingRecordStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> BookingRecord:
        if not fields.get("booking_id"):
            raise ValueError("booking_id is required")
        if not fields.get("email"):
            raise ValueError("email is required")
        self._check_snapshot_pair(fields)
        if "raw_booking" in fields and isinstance(fields["raw_booking"], dict):
            fields["raw_booking"] = dump_raw_booking(fields["raw_booking"])

        record = BookingRecord(**fields)
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)

        logger.info(f"Stored booking record {record.id} for booking {record.booking_id}")
        return record

    def find_one(self, **filters) -> Optional[BookingRecord]:
        return self.db.query(BookingRecord).filter_by(**filters).first()

    def find(self, **filters) -> List[BookingRecord]:
        return (
            self.db.query(BookingRecord)
            .filter_by(**filters)
            .order_by(BookingRecord.created_at)
            .all()
        )

    def update_fields(self, record_id: str, **fields) -> BookingRecord:
        """
        Partial update: only the named fields change.

        Raises ValueError for unknown fields, a snapshot written without its
        pair, or an attempt to leave the cancelled state.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown booking record fields: {', '.join(sorted(unknown))}")
        self._check_snapshot_pair(fields)

        record = self.db.query(BookingRecord).filter(BookingRecord.id == record_id).first()
        if record is None:
            raise LookupError(f"Booking record {record_id} not found")

        new_status = fields.get("status")
        if (
            new_status is not None
            and record.status == BookingRecordStatus.CANCELLED_BY_CUSTOMER.value
            and new_status != record.status
        ):
            raise ValueError(f"Booking {record.booking_id} is cancelled and cannot move to {new_status}")

        if isinstance(fields.get("raw_booking"), dict):
            fields["raw_booking"] = dump_raw_booking(fields["raw_booking"])

        for name, value in fields.items():
            setattr(record, name, value)
        self.db.commit()
        self.db.refresh(record)
        return record

    # ==================
    # Lookups
    # ==================

    def get_by_booking_id(
        self,
        booking_id: str,
        status: Optional[str] = BookingRecordStatus.ACCEPTED.value
    ) -> Optional[BookingRecord]:
        """Customer-facing lookup, filtered on status unless status=None."""
        if status is None:
            return self.find_one(booking_id=booking_id)
        return self.find_one(booking_id=booking_id, status=status)

    def get_by_payment_link_id(self, payment_link_id: str) -> Optional[BookingRecord]:
        """Reconciliation lookup. Global: webhooks carry no customer context."""
        if not payment_link_id:
            return None
        return self.find_one(payment_link_id=payment_link_id)

    def list_for_email(
        self,
        email: str,
        status: str = BookingRecordStatus.ACCEPTED.value
    ) -> List[BookingRecord]:
        return self.find(email=email, status=status)

    @staticmethod
    def _check_snapshot_pair(fields: Dict[str, Any]) -> None:
        present = SNAPSHOT_FIELDS & set(fields)
        if present and present != SNAPSHOT_FIELDS:
            raise ValueError("raw_booking and service_names must be written together")
