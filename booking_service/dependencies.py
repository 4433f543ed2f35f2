"""
FastAPI dependency providers.

Process-wide collaborators (Square client, dispatcher, lock registry) live
on app.state; per-request ones (store, handlers) are built from the
request's DB session.
"""

import secrets
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .database import get_db
from .errors import AuthenticationFailed
from .services.booking_store import BookingRecordStore
from .services.customer_bookings import CustomerBookingService
from .services.dispatcher import EventDispatcher
from .services.identity import IdentityService, extract_bearer_token
from .services.reconciliation import ReconciliationHandler, ReconciliationStrategy
from .services.square_client import SquareClient
from .services.webhook_service import WebhookService
from .utils.keyed_lock import KeyedLock


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "no-request-id")


def get_square_client(request: Request, settings: Settings = Depends(get_settings)) -> SquareClient:
    client = getattr(request.app.state, "square_client", None)
    if client is None:
        client = SquareClient.from_settings(settings)
        request.app.state.square_client = client
    return client


def get_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.dispatcher


def get_locks(request: Request) -> KeyedLock:
    return request.app.state.locks


def get_booking_store(db: Session = Depends(get_db)) -> BookingRecordStore:
    return BookingRecordStore(db)


def get_identity_service(settings: Settings = Depends(get_settings)) -> IdentityService:
    return IdentityService(settings.identity_secret_key, settings.identity_algorithm)


def require_identity(
    authorization: Optional[str] = Header(None),
    identity: IdentityService = Depends(get_identity_service)
) -> Dict[str, Any]:
    """Metadata of the authenticated customer; 401 otherwise."""
    token = extract_bearer_token(authorization)
    if not token:
        raise AuthenticationFailed("Missing bearer token")

    validation = identity.validate_user(token)
    if validation.error:
        raise AuthenticationFailed(f"Unable to validate token: {validation.error}")
    return validation.metadata


def require_admin(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
    settings: Settings = Depends(get_settings)
) -> None:
    if not settings.admin_api_key or not x_admin_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin key required")
    if not secrets.compare_digest(x_admin_key, settings.admin_api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin key")


def get_reconciliation_handler(
    store: BookingRecordStore = Depends(get_booking_store),
    gateway: SquareClient = Depends(get_square_client),
    locks: KeyedLock = Depends(get_locks),
    settings: Settings = Depends(get_settings)
) -> ReconciliationHandler:
    strategy = ReconciliationStrategy.from_setting(settings.reconciliation_strategy)
    return ReconciliationHandler(store, gateway, locks, strategy)


def get_webhook_service(
    request: Request,
    db: Session = Depends(get_db),
    handler: ReconciliationHandler = Depends(get_reconciliation_handler),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings)
) -> WebhookService:
    return WebhookService(
        db,
        handler,
        dispatcher,
        signature_key=settings.square_signature_key,
        request_id=get_request_id(request)
    )


def get_customer_booking_service(
    store: BookingRecordStore = Depends(get_booking_store),
    gateway: SquareClient = Depends(get_square_client),
    locks: KeyedLock = Depends(get_locks),
    settings: Settings = Depends(get_settings)
) -> CustomerBookingService:
    return CustomerBookingService(
        store,
        gateway,
        locks,
        location_id=settings.square_location_id,
        redirect_url=settings.payment_link_redirect_url
    )
