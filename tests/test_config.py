import pytest

from booking_service.config import Settings
from booking_service.database import normalize_database_url


class TestSettings:

    def test_sandbox_is_default(self):
        assert Settings(SQUARE_ENVIRONMENT="sandbox").square_base_url == \
            "https://connect.squareupsandbox.com/v2"

    def test_production_host(self):
        settings = Settings(
            ENVIRONMENT="production",
            SQUARE_ENVIRONMENT="production",
            SQUARE_ACCESS_TOKEN="t",
            SQUARE_SIGNATURE_KEY="k",
            SQUARE_LOCATION_ID="L",
            IDENTITY_SECRET_KEY="s",
        )
        assert settings.square_base_url == "https://connect.squareup.com/v2"
        assert settings.is_production

    def test_production_requires_secrets(self):
        with pytest.raises(ValueError):
            Settings(ENVIRONMENT="production", SQUARE_ACCESS_TOKEN="", IDENTITY_SECRET_KEY="")

    def test_cors_origins_parsed(self):
        settings = Settings(ALLOWED_ORIGINS="https://a.example/, https://b.example,https://a.example")
        assert settings.cors_origins == ["https://a.example", "https://b.example"]


def test_normalize_database_url():
    assert normalize_database_url("postgres://u:p@h/db") == "postgresql://u:p@h/db"
    assert normalize_database_url("sqlite://") == "sqlite://"
