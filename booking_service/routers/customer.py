from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from ..dependencies import (
    get_booking_store,
    get_customer_booking_service,
    require_identity,
)
from ..errors import AuthorizationMismatch, BookingNotAvailable, ValidationError
from ..models.booking_record import BookingRecord
from ..schemas.booking import (
    BookingCancelResponse,
    BookingCreateRequest,
    BookingUpdateRequest,
    CustomerIdResponse,
    CustomerSearchRequest,
)
from ..services.booking_store import BookingRecordStore
from ..services.customer_bookings import CustomerBookingService
from ..services.identity import ensure_owner

router = APIRouter(prefix="/api/customer", tags=["Customer bookings"])


def _owned_accepted_record(
    booking_id: str,
    metadata: Dict[str, Any],
    store: BookingRecordStore
) -> BookingRecord:
    record = store.get_by_booking_id(booking_id)
    if record is None:
        raise BookingNotAvailable()
    ensure_owner(metadata, record)
    return record


@router.post("/search", response_model=CustomerIdResponse)
async def search_customer(
    payload: CustomerSearchRequest,
    service: CustomerBookingService = Depends(get_customer_booking_service)
):
    """Find the Square customer for these details, creating one if needed"""
    customer_id = await service.get_customer_id(
        payload.given_name, payload.family_name, payload.email_address
    )
    return CustomerIdResponse(customer_id=customer_id)


@router.get("/booking")
async def list_customer_bookings(
    email: Optional[str] = Query(None),
    metadata: Dict[str, Any] = Depends(require_identity),
    service: CustomerBookingService = Depends(get_customer_booking_service)
) -> List[Dict[str, Any]]:
    """
    Accepted bookings of the signed-in customer, as stored at booking time.
    """
    if not email:
        raise ValidationError("No email parameter found.")
    if email != metadata.get("email"):
        raise AuthorizationMismatch()
    return service.list_bookings(email)


@router.get("/booking/{booking_id}")
async def get_customer_booking(
    booking_id: str,
    metadata: Dict[str, Any] = Depends(require_identity),
    store: BookingRecordStore = Depends(get_booking_store),
    service: CustomerBookingService = Depends(get_customer_booking_service)
):
    """Live booking detail with its services, staff member, payment link and order"""
    record = _owned_accepted_record(booking_id, metadata, store)
    return await service.get_booking_detail(record)


@router.post("/booking")
async def create_customer_booking(
    payload: BookingCreateRequest,
    metadata: Dict[str, Any] = Depends(require_identity),
    service: CustomerBookingService = Depends(get_customer_booking_service)
):
    """Create the Square booking and its payment link, then store the record"""
    if payload.booking.email_address != metadata.get("email"):
        raise AuthorizationMismatch()
    booking = await service.create_booking(payload.booking)
    return {"booking": booking}


@router.put("/booking/{booking_id}")
async def update_customer_booking(
    booking_id: str,
    payload: BookingUpdateRequest,
    metadata: Dict[str, Any] = Depends(require_identity),
    store: BookingRecordStore = Depends(get_booking_store),
    service: CustomerBookingService = Depends(get_customer_booking_service)
):
    """Update an existing booking, e.g. move its start time"""
    record = _owned_accepted_record(booking_id, metadata, store)
    return await service.update_booking(record, payload.booking, payload.service_names)


@router.delete("/booking/{booking_id}", response_model=BookingCancelResponse)
async def cancel_customer_booking(
    booking_id: str,
    metadata: Dict[str, Any] = Depends(require_identity),
    store: BookingRecordStore = Depends(get_booking_store),
    service: CustomerBookingService = Depends(get_customer_booking_service)
):
    record = _owned_accepted_record(booking_id, metadata, store)
    await service.cancel_booking(record)
    return BookingCancelResponse(booking_id=booking_id, cancelled=True)
