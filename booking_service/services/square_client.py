"""
Square API Client

Async wrapper over the Square REST API (v2) used by the booking flow:
- Bearer auth + Square-Version header
- Per-request timeout
- Exponential backoff on transport errors, 429 and 5xx for reads only;
  writes (create/update/cancel) are sent exactly once
- Non-2xx answers raised as GatewayError with Square's error list

Square API Documentation: https://developer.squareup.com/reference/square
"""

import asyncio
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..config import Settings
from ..errors import GatewayError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def new_idempotency_key() -> str:
    return str(uuid.uuid4())


class SquareClient:
    """
    Client for the Square endpoints this service needs.

    Pass `http_client` to share a connection pool (or a mock transport in tests).
    """

    def __init__(
        self,
        access_token: str,
        base_url: str,
        api_version: str,
        location_id: str = "",
        timeout: float = 10.0,
        max_retries: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.location_id = location_id
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings, http_client: Optional[httpx.AsyncClient] = None) -> "SquareClient":
        return cls(
            access_token=settings.square_access_token,
            base_url=settings.square_base_url,
            api_version=settings.square_api_version,
            location_id=settings.square_location_id,
            timeout=settings.square_timeout_seconds,
            max_retries=settings.square_max_retries,
            base_delay=settings.square_retry_base_delay,
            http_client=http_client,
        )

    async def aclose(self):
        await self._client.aclose()

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Square-Version": self.api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _make_request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict] = None,
        idempotent: bool = True
    ) -> Dict[str, Any]:
        """
        Send a request and return the decoded JSON body.

        Idempotent requests are retried with backoff; others get one attempt.
        """
        url = f"{self.base_url}{path}"
        attempts = self.max_retries + 1 if idempotent else 1
        last_error: Optional[GatewayError] = None

        for attempt in range(attempts):
            start_time = time.monotonic()
            try:
                response = await self._client.request(
                    method,
                    url,
                    headers=self._get_headers(),
                    json=payload,
                    timeout=self.timeout,
                )
            except httpx.HTTPError as e:
                last_error = GatewayError(
                    f"Square request failed: {type(e).__name__}: {e}",
                    status_code=0,
                    retryable=True,
                )
            else:
                duration_ms = round((time.monotonic() - start_time) * 1000, 1)
                logger.gateway_call(method, path, response.status_code, duration_ms)

                try:
                    data = response.json() if response.content else {}
                except ValueError:
                    data = {}

                if 200 <= response.status_code < 300:
                    return data

                errors = data.get("errors", []) if isinstance(data, dict) else []
                last_error = GatewayError(
                    f"Square {method} {path} returned {response.status_code}",
                    status_code=response.status_code,
                    errors=errors,
                    retryable=response.status_code in RETRYABLE_STATUS,
                )

            if not last_error.retryable or attempt + 1 >= attempts:
                break

            delay = min(self.base_delay * (2 ** attempt), self.max_delay)
            logger.warning(f"{last_error}, retrying in {delay}s (attempt {attempt + 1}/{attempts})")
            await asyncio.sleep(delay)

        raise last_error

    # ==================
    # Locations
    # ==================

    async def retrieve_location(self, location_id: Optional[str] = None) -> Dict[str, Any]:
        data = await self._make_request("GET", f"/locations/{location_id or self.location_id}")
        return data.get("location", {})

    # ==================
    # Orders & payments
    # ==================

    async def retrieve_order(self, order_id: str) -> Dict[str, Any]:
        data = await self._make_request("GET", f"/orders/{order_id}")
        return data.get("order", {})

    async def update_order(self, order_id: str, order: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sparse order update. `order` must carry the `version` it was read at;
        Square rejects the write if the order changed in between.
        """
        payload = {"order": order, "idempotency_key": new_idempotency_key()}
        data = await self._make_request("PUT", f"/orders/{order_id}", payload, idempotent=False)
        return data.get("order", {})

    async def get_payment(self, payment_id: str) -> Dict[str, Any]:
        data = await self._make_request("GET", f"/payments/{payment_id}")
        return data.get("payment", {})

    # ==================
    # Bookings
    # ==================

    async def retrieve_booking(self, booking_id: str) -> Dict[str, Any]:
        data = await self._make_request("GET", f"/bookings/{booking_id}")
        return data.get("booking", {})

    async def create_booking(self, booking: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"booking": booking, "idempotency_key": new_idempotency_key()}
        data = await self._make_request("POST", "/bookings", payload, idempotent=False)
        return data.get("booking", {})

    async def update_booking(self, booking_id: str, booking: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"booking": booking, "idempotency_key": new_idempotency_key()}
        data = await self._make_request("PUT", f"/bookings/{booking_id}", payload, idempotent=False)
        return data.get("booking", {})

    async def cancel_booking(self, booking_id: str, booking_version: Optional[int] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"idempotency_key": new_idempotency_key()}
        if booking_version is not None:
            payload["booking_version"] = booking_version
        data = await self._make_request("POST", f"/bookings/{booking_id}/cancel", payload, idempotent=False)
        return data.get("booking", {})

    # ==================
    # Catalog & team
    # ==================

    async def batch_retrieve_catalog_objects(
        self,
        object_ids: List[str],
        include_related_objects: bool = True
    ) -> Tuple[List[Dict], List[Dict]]:
        """Returns (objects, related_objects). Read-only, so retried."""
        payload = {"object_ids": object_ids, "include_related_objects": include_related_objects}
        data = await self._make_request("POST", "/catalog/batch-retrieve", payload)
        return data.get("objects", []), data.get("related_objects", [])

    async def retrieve_team_member(self, team_member_id: str) -> Dict[str, Any]:
        data = await self._make_request("GET", f"/team-members/{team_member_id}")
        return data.get("team_member", {})

    # ==================
    # Checkout
    # ==================

    async def retrieve_payment_link(self, payment_link_id: str) -> Dict[str, Any]:
        data = await self._make_request("GET", f"/online-checkout/payment-links/{payment_link_id}")
        return data.get("payment_link", {})

    async def create_payment_link(self, body: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"idempotency_key": new_idempotency_key(), **body}
        data = await self._make_request("POST", "/online-checkout/payment-links", payload, idempotent=False)
        return data.get("payment_link", {})

    # ==================
    # Customers
    # ==================

    async def search_customers(self, email_address: str) -> List[Dict[str, Any]]:
        payload = {"query": {"filter": {"email_address": {"exact": email_address}}}}
        data = await self._make_request("POST", "/customers/search", payload)
        return data.get("customers", [])

    async def create_customer(
        self,
        given_name: str,
        family_name: str,
        email_address: str,
        reference_id: str = "BOOKINGS-SAMPLE-APP"
    ) -> Dict[str, Any]:
        payload = {
            "idempotency_key": new_idempotency_key(),
            "given_name": given_name,
            "family_name": family_name,
            "email_address": email_address,
            "reference_id": reference_id,
        }
        data = await self._make_request("POST", "/customers", payload, idempotent=False)
        return data.get("customer", {})
