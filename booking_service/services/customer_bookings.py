"""
Customer Booking Service
========================
Customer-facing booking operations. Each one calls Square first and only
then mirrors the result into the local booking record:
1. Find-or-create the Square customer
2. Create booking + payment link, store the record
3. Update / cancel (serialized per booking with the reconciliation flow)
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..errors import BookingNotAvailable
from ..models.booking_record import BookingRecord, BookingRecordStatus, PaymentStatus
from ..schemas.booking import BookingDetails, ServiceSelection
from ..utils.keyed_lock import KeyedLock, booking_lock_key
from .booking_store import BookingRecordStore, load_raw_booking
from .square_client import SquareClient

logger = logging.getLogger(__name__)


class CustomerBookingService:
    def __init__(
        self,
        store: BookingRecordStore,
        gateway: SquareClient,
        locks: KeyedLock,
        location_id: str,
        redirect_url: str = ""
    ):
        self.store = store
        self.gateway = gateway
        self.locks = locks
        self.location_id = location_id
        self.redirect_url = redirect_url

    async def get_customer_id(self, given_name: str, family_name: str, email_address: str) -> str:
        """
        Id of the Square customer with this email and name, created if missing.
        """
        customers = await self.gateway.search_customers(email_address)
        for customer in customers:
            if customer.get("given_name") == given_name and customer.get("family_name") == family_name:
                return customer["id"]

        customer = await self.gateway.create_customer(given_name, family_name, email_address)
        logger.info(f"Created Square customer {customer.get('id')}")
        return customer["id"]

    def list_bookings(self, email: str) -> List[Dict[str, Any]]:
        """Accepted bookings for an email, each snapshot merged with its service names."""
        bookings = []
        for record in self.store.list_for_email(email):
            if not record.raw_booking or not record.service_names:
                continue
            bookings.append({**load_raw_booking(record.raw_booking), "service_names": record.service_names})
        return bookings

    async def get_booking_detail(self, record: BookingRecord) -> Dict[str, Any]:
        booking = await self.gateway.retrieve_booking(record.booking_id)

        segments = booking.get("appointment_segments") or []
        object_ids = [s["service_variation_id"] for s in segments if s.get("service_variation_id")]
        team_member_id = next((s.get("team_member_id") for s in segments if s.get("team_member_id")), None)

        catalog, team_member, payment_link, order = await asyncio.gather(
            self.gateway.batch_retrieve_catalog_objects(object_ids),
            self._team_member_or_none(team_member_id),
            self._payment_link_or_none(record.payment_link_id),
            self._order_or_none(record.order_id),
        )
        objects, related_objects = catalog

        return {
            "booking": booking,
            "objects": objects,
            "related_objects": related_objects,
            "team_member": team_member,
            "payment_link": payment_link,
            "order": order,
        }

    async def create_booking(self, details: BookingDetails) -> Dict[str, Any]:
        customer_id = await self.get_customer_id(
            details.given_name, details.family_name, details.email_address
        )

        booking_body = {
            "appointment_segments": details.appointment_segments,
            "customer_id": customer_id,
            "location_id": self.location_id,
            "start_at": details.start_at,
        }
        if details.customer_note:
            booking_body["customer_note"] = details.customer_note
        if details.seller_note:
            booking_body["seller_note"] = details.seller_note

        booking = await self.gateway.create_booking(booking_body)
        payment_link = await self.gateway.create_payment_link(
            self._payment_link_body(details.services, booking.get("id"))
        )

        self.store.create(
            booking_id=booking["id"],
            customer_id=customer_id,
            email=details.email_address,
            order_id=payment_link.get("order_id"),
            payment_link_id=payment_link.get("id"),
            payment_status=PaymentStatus.PENDING.value,
            raw_booking=booking,
            service_names=[s.name for s in details.services],
            status=booking.get("status", BookingRecordStatus.ACCEPTED.value),
        )
        return booking

    def _ensure_still_accepted(self, record: BookingRecord) -> None:
        # A concurrent cancel may have committed while this call waited on the lock
        self.store.db.refresh(record)
        if record.status != BookingRecordStatus.ACCEPTED.value:
            raise BookingNotAvailable()

    async def update_booking(
        self,
        record: BookingRecord,
        booking: Dict[str, Any],
        service_names: List[str]
    ) -> Dict[str, Any]:
        async with self.locks.hold(booking_lock_key(record.booking_id)):
            self._ensure_still_accepted(record)
            updated = await self.gateway.update_booking(record.booking_id, booking)
            self.store.update_fields(record.id, raw_booking=updated, service_names=service_names)
        return updated

    async def cancel_booking(self, record: BookingRecord) -> None:
        async with self.locks.hold(booking_lock_key(record.booking_id)):
            self._ensure_still_accepted(record)
            current = await self.gateway.retrieve_booking(record.booking_id)
            await self.gateway.cancel_booking(record.booking_id, booking_version=current.get("version"))
            self.store.update_fields(record.id, status=BookingRecordStatus.CANCELLED_BY_CUSTOMER.value)
        logger.info(f"Booking {record.booking_id} cancelled by customer")

    def _payment_link_body(self, services: List[ServiceSelection], booking_id: Optional[str]) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "description": f"Booking {booking_id}",
            "quick_pay": {
                "location_id": self.location_id,
                "name": ", ".join(s.name for s in services),
                "price_money": {
                    "amount": sum(s.amount for s in services),
                    "currency": services[0].currency,
                },
            },
        }
        if self.redirect_url:
            body["checkout_options"] = {"redirect_url": self.redirect_url}
        return body

    async def _team_member_or_none(self, team_member_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not team_member_id:
            return None
        return await self.gateway.retrieve_team_member(team_member_id)

    async def _payment_link_or_none(self, payment_link_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not payment_link_id:
            return None
        return await self.gateway.retrieve_payment_link(payment_link_id)

    async def _order_or_none(self, order_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not order_id:
            return None
        return await self.gateway.retrieve_order(order_id)
