"""
Error taxonomy and the centralized responder.

Routers and services raise these; `register_exception_handlers` maps each
kind to an HTTP status and a user-facing message in one place.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

logger = logging.getLogger(__name__)


class BookingServiceError(Exception):
    """Base class for errors this service maps to HTTP responses."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class SignatureMismatch(BookingServiceError):
    """Webhook signature did not match; nothing may be processed."""
    status_code = 404

    def __init__(self, message: str = "Signature doesn't match"):
        super().__init__(message)


class ReconciliationNotFound(BookingServiceError):
    """No local record correlates with the event's key."""
    status_code = 404

    def __init__(self, correlation_id: str):
        super().__init__(f"No booking record for payment link {correlation_id}")
        self.correlation_id = correlation_id


class AuthenticationFailed(BookingServiceError):
    status_code = 401

    def __init__(self, message: str = "Unable to validate token"):
        super().__init__(message)


class AuthorizationMismatch(BookingServiceError):
    """Identity does not own the record. Shaped like not-found on purpose."""
    status_code = 404

    def __init__(self, message: str = "user doesn't match"):
        super().__init__(message)


class BookingNotAvailable(BookingServiceError):
    """No accepted record for the booking id (unknown or cancelled)."""
    status_code = 410

    def __init__(self, message: str = "Invalid or canceled."):
        super().__init__(message)


class ValidationError(BookingServiceError):
    status_code = 400


class GatewayError(BookingServiceError):
    """
    A Square API call failed.

    `errors` is Square's error list: [{"category", "code", "detail"}].
    `status_code` is the HTTP status Square answered with, 0 for transport failures.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        errors: Optional[List[Dict[str, Any]]] = None,
        retryable: bool = False
    ):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []
        self.retryable = retryable

    def details(self) -> List[str]:
        return [str(e.get("detail", "")) for e in self.errors if isinstance(e, dict)]

    def __str__(self):
        return f"{self.message} (status={self.status_code})"


# Known business conditions Square reports, mapped to customer-facing text.
CURATED_GATEWAY_MESSAGES = [
    (
        re.compile(r"That time slot is no longer available"),
        "Opps! This appointment time is no longer available. Please try booking again.",
    ),
    (
        re.compile(r"Stale version"),
        "The service has been updated since selecting it. Please try booking it again.",
    ),
    (
        re.compile(
            r"cannot cancel past cancellation period end"
            r"|The cancellation period for this booking has ended"
        ),
        "Sorry! The booking is past the cancellation period so cannot be cancelled or rescheduled.",
    ),
]


def describe_gateway_error(exc: GatewayError, echo_details: bool = False) -> tuple[int, Dict[str, Any]]:
    """Map a gateway failure to (status, body)."""
    details = exc.details()

    for pattern, description in CURATED_GATEWAY_MESSAGES:
        if any(pattern.search(detail) for detail in details):
            return 400, {"code": 400, "short_description": "Bad Request", "detail": description}

    if exc.status_code == 404:
        return 404, {"code": 404, "short_description": "Not Found", "detail": "The resource was not found"}

    if echo_details:
        status = exc.status_code if exc.status_code >= 400 else 500
        return status, {
            "code": status,
            "short_description": exc.message,
            "detail": exc.errors or exc.message,
        }

    return 500, {"code": 500, "short_description": "Internal Server Error", "detail": "Something went wrong"}


def register_exception_handlers(app: FastAPI, echo_details: bool = False) -> None:
    """Attach the taxonomy -> HTTP mapping to the app."""

    @app.exception_handler(SignatureMismatch)
    async def signature_mismatch_handler(request: Request, exc: SignatureMismatch):
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        logger.error(f"Square request failed on {request.url.path}: {exc} {exc.errors}")
        status, body = describe_gateway_error(exc, echo_details)
        return JSONResponse(status_code=status, content=body)

    @app.exception_handler(BookingServiceError)
    async def booking_service_error_handler(request: Request, exc: BookingServiceError):
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        else:
            logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.url.path}: {exc}")
        detail = str(exc) if echo_details else "Something went wrong"
        return JSONResponse(status_code=500, content={"detail": detail})
