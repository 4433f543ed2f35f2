import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Index, JSON
from ..database import Base
import enum


class BookingRecordStatus(str, enum.Enum):
    """Local booking lifecycle state (mirrors Square booking statuses we store)"""
    ACCEPTED = "ACCEPTED"
    PENDING = "PENDING"
    CANCELLED_BY_CUSTOMER = "CANCELLED_BY_CUSTOMER"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"
    FAILED = "FAILED"


class BookingRecord(Base):
    """
    Local projection of a Square booking and its payment.

    Square is the system of record; this row caches the last known
    order/payment state and a snapshot of the booking for display.
    Rows are never deleted, cancellation is a status change.
    """
    __tablename__ = "booking_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Customer identity
    email = Column(String(255), nullable=False)
    customer_id = Column(String(255), nullable=True)  # Square customer ID

    # Square correlation keys
    booking_id = Column(String(255), nullable=False)
    order_id = Column(String(255), nullable=True)
    payment_link_id = Column(String(255), nullable=True)

    # Last known remote state
    order_status = Column(String(50), nullable=True)
    payment_status = Column(String(50), nullable=True)
    status = Column(String(50), default=BookingRecordStatus.ACCEPTED.value)

    # Snapshot of the booking payload (JSON text, arbitrary-precision numbers)
    raw_booking = Column(Text, nullable=True)
    service_names = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_booking_record_booking_status", "booking_id", "status"),
        Index("ix_booking_record_payment_link", "payment_link_id"),
        Index("ix_booking_record_email_status", "email", "status"),
    )

    def __repr__(self):
        return f"<BookingRecord {self.booking_id} status={self.status}>"
