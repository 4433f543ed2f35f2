"""
Tests for the webhook pipeline (verify -> log -> reconcile -> publish)

Tests cover:
- The k1 / https://h/events end-to-end scenario
- Bad signature: nothing stored, nothing published
- Exactly one publish per verified event, with the original body
- Event log status per outcome
- Administrative replay and per-booking reconcile
"""

import asyncio
import json

import pytest

from booking_service.errors import ReconciliationNotFound, SignatureMismatch, ValidationError
from booking_service.models.webhook_event import WebhookEventLog, WebhookEventStatus
from booking_service.services.dispatcher import EventDispatcher
from booking_service.services.reconciliation import ReconciliationHandler, ReconciliationOutcome
from booking_service.services.signature import compute_signature
from booking_service.services.webhook_service import WebhookService, ack_body
from booking_service.utils.keyed_lock import KeyedLock
from factories import make_record

URL = "https://h/events"
BODY = b'{"type":"payment.updated","id":"PL123"}'


@pytest.fixture()
def dispatcher():
    return EventDispatcher()


@pytest.fixture()
def service(db_session, store, gateway, dispatcher):
    handler = ReconciliationHandler(store, gateway, KeyedLock())
    return WebhookService(db_session, handler, dispatcher, signature_key="k1", request_id="test")


def receive(service, body=BODY, signature=None, url=URL):
    if signature is None:
        signature = compute_signature("k1", url, body)
    return asyncio.run(service.receive(body, url, signature))


class TestEndToEnd:

    def test_matching_record_is_reconciled_and_published(self, service, store, dispatcher, db_session):
        make_record(store)
        _, queue = dispatcher.subscribe()

        result = receive(service)

        assert result.outcome == ReconciliationOutcome.APPLIED
        assert ack_body(result) == {"ok": True}
        assert store.get_by_booking_id("BK1").order_status == "COMPLETED"

        assert queue.qsize() == 1
        assert queue.get_nowait() == {"type": "payment.updated", "data": json.loads(BODY)}

        event_log = db_session.query(WebhookEventLog).one()
        assert event_log.status == WebhookEventStatus.PROCESSED.value
        assert event_log.correlation_id == "PL123"
        assert event_log.payload_json == BODY.decode()
        assert event_log.attempts == 1

    def test_absent_record_is_not_found(self, service, dispatcher, db_session, gateway):
        _, queue = dispatcher.subscribe()

        result = receive(service)

        assert result.outcome == ReconciliationOutcome.NOT_FOUND
        assert ack_body(result) == {"ok": False, "error": "not_found"}
        gateway.retrieve_order.assert_not_awaited()
        # Still published exactly once
        assert queue.qsize() == 1

        event_log = db_session.query(WebhookEventLog).one()
        assert event_log.status == WebhookEventStatus.FAILED.value
        assert event_log.result_action == "not_found"


class TestSignature:

    def test_bad_signature_stores_and_publishes_nothing(self, service, dispatcher, db_session, gateway):
        _, queue = dispatcher.subscribe()

        with pytest.raises(SignatureMismatch):
            receive(service, signature="bm90IHRoZSBzaWduYXR1cmU=")

        assert queue.qsize() == 0
        assert db_session.query(WebhookEventLog).count() == 0
        assert gateway.mock_calls == []

    def test_signature_over_other_url_rejected(self, service):
        signature = compute_signature("k1", "https://h/api/events", BODY)
        with pytest.raises(SignatureMismatch):
            receive(service, signature=signature)

    def test_invalid_json_after_valid_signature(self, service, db_session):
        with pytest.raises(ValidationError):
            receive(service, body=b"not json")
        assert db_session.query(WebhookEventLog).count() == 0


class TestUnhandledEvents:

    def test_other_types_are_published_untouched(self, service, dispatcher, store, gateway):
        make_record(store)
        body = b'{"type":"booking.updated","id":"BK1","data":{"object":{"booking":{"version":2}}}}'
        _, queue = dispatcher.subscribe()

        result = receive(service, body=body)

        assert result.outcome == ReconciliationOutcome.IGNORED
        assert gateway.mock_calls == []
        record = store.get_by_booking_id("BK1")
        assert record.order_status is None
        assert record.payment_status == "PENDING"

        assert queue.qsize() == 1
        assert queue.get_nowait()["data"] == json.loads(body)

    def test_numeric_event_id_is_published(self, service, dispatcher, db_session):
        body = b'{"type":"booking.created","id":"B1","event_id":42}'
        _, queue = dispatcher.subscribe()

        result = receive(service, body=body)

        assert result.outcome == ReconciliationOutcome.IGNORED
        assert ack_body(result) == {"ok": True}
        assert queue.qsize() == 1
        assert db_session.query(WebhookEventLog).one().event_id == "42"

    def test_gateway_error_still_publishes_once(self, service, dispatcher, store, gateway):
        from booking_service.errors import GatewayError

        make_record(store)
        gateway.retrieve_order.side_effect = GatewayError("Square unavailable", status_code=503, retryable=True)
        _, queue = dispatcher.subscribe()

        result = receive(service)

        assert result.outcome == ReconciliationOutcome.GATEWAY_ERROR
        assert ack_body(result) == {"ok": False, "error": "gateway_error"}
        assert queue.qsize() == 1

    def test_unexpected_error_marks_event_failed(self, service, dispatcher, store, gateway, db_session):
        make_record(store)
        gateway.retrieve_order.side_effect = KeyError("state")
        _, queue = dispatcher.subscribe()

        with pytest.raises(KeyError):
            receive(service)

        assert queue.qsize() == 1
        event_log = db_session.query(WebhookEventLog).one()
        assert event_log.status == WebhookEventStatus.FAILED.value
        assert event_log.attempts == 1
        assert event_log.result_action == "error"
        assert "KeyError" in event_log.error_message
        assert event_log.processed_at is not None
        assert store.get_by_booking_id("BK1").order_status is None


class TestAdministrativeReruns:

    def test_replay_after_record_appears(self, service, store, db_session):
        receive(service)
        event_log = db_session.query(WebhookEventLog).one()
        assert event_log.status == WebhookEventStatus.FAILED.value

        make_record(store)
        result = asyncio.run(service.replay(event_log.id))

        assert result.outcome == ReconciliationOutcome.APPLIED
        db_session.refresh(event_log)
        assert event_log.status == WebhookEventStatus.PROCESSED.value
        assert event_log.attempts == 2

    def test_replay_that_raises_counts_the_attempt(self, service, store, gateway, db_session):
        receive(service)
        event_log = db_session.query(WebhookEventLog).one()

        make_record(store)
        gateway.retrieve_order.side_effect = KeyError("state")
        with pytest.raises(KeyError):
            asyncio.run(service.replay(event_log.id))

        db_session.refresh(event_log)
        assert event_log.status == WebhookEventStatus.FAILED.value
        assert event_log.attempts == 2
        assert event_log.result_action == "error"

    def test_replay_unknown_event(self, service):
        with pytest.raises(LookupError):
            asyncio.run(service.replay("missing"))

    def test_reconcile_booking(self, service, store, dispatcher):
        make_record(store)
        _, queue = dispatcher.subscribe()

        result = asyncio.run(service.reconcile_booking("BK1"))

        assert result.outcome == ReconciliationOutcome.APPLIED
        assert store.get_by_booking_id("BK1").order_status == "COMPLETED"
        assert queue.qsize() == 1

    def test_reconcile_booking_without_payment_link(self, service, store):
        make_record(store, payment_link_id=None)
        with pytest.raises(ReconciliationNotFound):
            asyncio.run(service.reconcile_booking("BK1"))

    def test_list_events_filters_by_status(self, service, store):
        receive(service)
        make_record(store)
        receive(service)

        assert len(service.list_events()) == 2
        assert len(service.list_events(status=WebhookEventStatus.FAILED.value)) == 1
        assert len(service.list_events(status=WebhookEventStatus.PROCESSED.value)) == 1
