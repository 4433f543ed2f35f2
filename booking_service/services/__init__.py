# Services package
from .booking_store import BookingRecordStore
from .customer_bookings import CustomerBookingService
from .dispatcher import EventDispatcher
from .identity import IdentityService, UserValidation
from .reconciliation import (
    ReconciliationHandler,
    ReconciliationOutcome,
    ReconciliationResult,
    ReconciliationStrategy,
)
from .square_client import SquareClient
from .webhook_service import WebhookService

__all__ = [
    "BookingRecordStore",
    "CustomerBookingService",
    "EventDispatcher",
    "IdentityService", "UserValidation",
    "ReconciliationHandler", "ReconciliationOutcome", "ReconciliationResult", "ReconciliationStrategy",
    "SquareClient",
    "WebhookService",
]
