"""
Webhook Event Log Model

Every verified Square webhook is stored here before reconciliation runs.
The row records what reconciliation did with it, so a failed event can be
replayed by an administrator once the underlying problem is fixed.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Index, Integer
from ..database import Base
import enum


class WebhookEventStatus(str, enum.Enum):
    RECEIVED = "received"
    PROCESSED = "processed"
    IGNORED = "ignored"  # Event type has no local mutation
    FAILED = "failed"


class WebhookEventLog(Base):
    __tablename__ = "webhook_event_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    provider = Column(String(50), default="square", nullable=False)

    # Square identifiers
    event_id = Column(String(255), nullable=True)  # envelope event_id
    event_type = Column(String(100), nullable=True)  # payment.updated, booking.created...
    correlation_id = Column(String(255), nullable=True)  # payment / payment link id

    # Raw payload exactly as received
    payload_json = Column(Text, nullable=False)

    status = Column(String(20), default=WebhookEventStatus.RECEIVED.value)
    attempts = Column(Integer, default=0)

    # Processing result
    result_action = Column(String(50), nullable=True)  # applied, ignored, not_found, gateway_error
    result_record_id = Column(String(36), nullable=True)
    error_message = Column(Text, nullable=True)

    received_at = Column(DateTime, default=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_webhook_event_status", "status", "received_at"),
        Index("ix_webhook_event_correlation", "provider", "correlation_id"),
    )

    def __repr__(self):
        return f"<WebhookEventLog {self.provider} {self.event_type} status={self.status}>"
