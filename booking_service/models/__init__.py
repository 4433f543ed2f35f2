# Models package
from .booking_record import BookingRecord, BookingRecordStatus, PaymentStatus
from .webhook_event import WebhookEventLog, WebhookEventStatus

__all__ = [
    "BookingRecord", "BookingRecordStatus", "PaymentStatus",
    "WebhookEventLog", "WebhookEventStatus",
]
