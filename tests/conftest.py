"""Shared fixtures for the booking service test suite."""

import os
import sys

# Settings are read once at import time, so configure before importing the app
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["VERIFY_LOCATION_ON_STARTUP"] = "false"
os.environ["SQUARE_SIGNATURE_KEY"] = "test-signature-key"
os.environ["SQUARE_LOCATION_ID"] = "LOC1"
os.environ["IDENTITY_SECRET_KEY"] = "test-identity-secret"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["RATE_LIMIT_DEFAULT"] = "10000/minute"
os.environ["WEBHOOK_NOTIFICATION_URL"] = ""

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from booking_service.database import Base, get_db
from booking_service import models  # noqa: F401
from booking_service.dependencies import get_square_client
from booking_service.main import app
from booking_service.services.booking_store import BookingRecordStore
from booking_service.services.square_client import SquareClient


@pytest.fixture()
def db_session():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def store(db_session):
    return BookingRecordStore(db_session)


@pytest.fixture()
def gateway():
    """Square client double; spec=SquareClient turns its async methods into AsyncMocks."""
    mock = MagicMock(spec=SquareClient)
    mock.retrieve_order.return_value = {
        "id": "ORDER1",
        "location_id": "LOC1",
        "version": 3,
        "state": "OPEN",
        "fulfillments": [{"uid": "F1", "state": "PROPOSED"}],
    }
    mock.update_order.return_value = {"id": "ORDER1", "version": 4, "state": "COMPLETED"}
    mock.get_payment.return_value = {"id": "PL123", "status": "COMPLETED"}
    mock.retrieve_location.return_value = {"id": "LOC1", "name": "Main Street"}
    return mock


@pytest.fixture()
def client(db_session, gateway):
    """TestClient wired to the in-memory database and the gateway double."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_square_client] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    if hasattr(app.state, "location"):
        del app.state.location
