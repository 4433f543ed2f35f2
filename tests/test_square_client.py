"""
Tests for the Square API client

Uses httpx.MockTransport so no request leaves the process.
"""

import asyncio
import json

import httpx
import pytest

from booking_service.errors import GatewayError
from booking_service.services.square_client import SquareClient

BASE_URL = "https://connect.squareupsandbox.com/v2"


def make_client(handler, max_retries=3):
    transport = httpx.MockTransport(handler)
    return SquareClient(
        access_token="sq-token",
        base_url=BASE_URL,
        api_version="2023-12-13",
        location_id="LOC1",
        max_retries=max_retries,
        base_delay=0,
        http_client=httpx.AsyncClient(transport=transport),
    )


def run(coro):
    return asyncio.run(coro)


class TestRequests:

    def test_headers_and_path(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"order": {"id": "ORDER1", "version": 3}})

        order = run(make_client(handler).retrieve_order("ORDER1"))

        assert order == {"id": "ORDER1", "version": 3}
        request = seen[0]
        assert request.method == "GET"
        assert str(request.url) == f"{BASE_URL}/orders/ORDER1"
        assert request.headers["Authorization"] == "Bearer sq-token"
        assert request.headers["Square-Version"] == "2023-12-13"

    def test_retrieve_location_defaults_to_configured_id(self):
        def handler(request):
            assert request.url.path.endswith("/locations/LOC1")
            return httpx.Response(200, json={"location": {"id": "LOC1", "name": "Main Street"}})

        assert run(make_client(handler).retrieve_location())["name"] == "Main Street"

    def test_update_order_sends_version_and_idempotency_key(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"order": {"id": "ORDER1", "state": "COMPLETED"}})

        result = run(make_client(handler).update_order("ORDER1", {"version": 3, "state": "COMPLETED"}))

        assert result["state"] == "COMPLETED"
        assert bodies[0]["order"] == {"version": 3, "state": "COMPLETED"}
        assert bodies[0]["idempotency_key"]

    def test_cancel_booking_with_version(self):
        bodies = []

        def handler(request):
            assert request.url.path.endswith("/bookings/BK1/cancel")
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"booking": {"id": "BK1", "status": "CANCELLED_BY_CUSTOMER"}})

        run(make_client(handler).cancel_booking("BK1", booking_version=5))

        assert bodies[0]["booking_version"] == 5

    def test_catalog_returns_objects_and_related(self):
        def handler(request):
            assert json.loads(request.content)["object_ids"] == ["SV1"]
            return httpx.Response(200, json={"objects": [{"id": "SV1"}], "related_objects": [{"id": "ITEM1"}]})

        objects, related = run(make_client(handler).batch_retrieve_catalog_objects(["SV1"]))

        assert objects == [{"id": "SV1"}]
        assert related == [{"id": "ITEM1"}]

    def test_search_customers_by_email(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["query"]["filter"]["email_address"]["exact"] == "ada@example.com"
            return httpx.Response(200, json={})

        assert run(make_client(handler).search_customers("ada@example.com")) == []


class TestRetries:

    def test_reads_retry_on_5xx(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, json={"errors": [{"code": "SERVICE_UNAVAILABLE"}]})
            return httpx.Response(200, json={"payment": {"id": "P1", "status": "COMPLETED"}})

        payment = run(make_client(handler).get_payment("P1"))

        assert payment["status"] == "COMPLETED"
        assert len(calls) == 3

    def test_reads_retry_on_transport_error(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"booking": {"id": "BK1"}})

        assert run(make_client(handler).retrieve_booking("BK1")) == {"id": "BK1"}
        assert len(calls) == 2

    def test_retries_exhausted(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, json={"errors": [{"code": "RATE_LIMITED"}]})

        with pytest.raises(GatewayError) as exc_info:
            run(make_client(handler, max_retries=2).retrieve_order("ORDER1"))

        assert exc_info.value.status_code == 429
        # One initial attempt plus two retries
        assert len(calls) == 3

    def test_zero_retries_sends_read_once(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        with pytest.raises(GatewayError) as exc_info:
            run(make_client(handler, max_retries=0).get_payment("P1"))

        assert exc_info.value.status_code == 503
        assert len(calls) == 1

    def test_writes_are_sent_once(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        with pytest.raises(GatewayError):
            run(make_client(handler).update_order("ORDER1", {"version": 3}))

        assert len(calls) == 1

    def test_client_errors_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, json={"errors": [{"code": "NOT_FOUND", "detail": "Order not found"}]})

        with pytest.raises(GatewayError) as exc_info:
            run(make_client(handler).retrieve_order("ORDER1"))

        assert len(calls) == 1
        assert exc_info.value.status_code == 404
        assert exc_info.value.details() == ["Order not found"]

    def test_transport_error_status_zero(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GatewayError) as exc_info:
            run(make_client(handler, max_retries=0).retrieve_order("ORDER1"))

        assert exc_info.value.status_code == 0
        assert exc_info.value.retryable is True
