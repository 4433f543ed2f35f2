"""Builders shared by the test modules."""

from jose import jwt

from booking_service.services.booking_store import BookingRecordStore

SIGNATURE_KEY = "test-signature-key"
IDENTITY_SECRET = "test-identity-secret"
ADMIN_KEY = "test-admin-key"
CUSTOMER_EMAIL = "ada@example.com"


def make_token(email: str = CUSTOMER_EMAIL, secret: str = IDENTITY_SECRET) -> str:
    return jwt.encode({"email": email, "sub": "user-1", "iss": "tests"}, secret, algorithm="HS256")


def auth_headers(email: str = CUSTOMER_EMAIL) -> dict:
    return {"Authorization": f"Bearer {make_token(email)}"}


def make_record(store: BookingRecordStore, **overrides):
    fields = {
        "booking_id": "BK1",
        "email": CUSTOMER_EMAIL,
        "customer_id": "CUST1",
        "order_id": "ORDER1",
        "payment_link_id": "PL123",
        "payment_status": "PENDING",
        "status": "ACCEPTED",
        "raw_booking": {"id": "BK1", "version": 0, "start_at": "2026-11-01T10:00:00Z"},
        "service_names": ["Haircut"],
    }
    fields.update(overrides)
    return store.create(**fields)
