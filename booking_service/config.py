from pydantic_settings import BaseSettings
from pydantic import Field, model_validator
from functools import lru_cache
from typing import List


SQUARE_HOSTS = {
    "sandbox": "https://connect.squareupsandbox.com",
    "production": "https://connect.squareup.com",
}


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./bookings.db",
        alias="DATABASE_URL"
    )

    # CORS - Frontend URLs (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        alias="ALLOWED_ORIGINS"
    )

    # ==============================================
    # Square Settings (Server-Side Only!)
    # ==============================================
    square_access_token: str = Field(default="", alias="SQUARE_ACCESS_TOKEN")
    square_environment: str = Field(default="sandbox", alias="SQUARE_ENVIRONMENT")
    square_api_version: str = Field(default="2023-12-13", alias="SQUARE_API_VERSION")
    square_location_id: str = Field(default="", alias="SQUARE_LOCATION_ID")

    # Signature key from the webhook subscription
    square_signature_key: str = Field(default="", alias="SQUARE_SIGNATURE_KEY")

    # HTTP behaviour for Square requests
    square_timeout_seconds: float = Field(default=10.0, alias="SQUARE_TIMEOUT_SECONDS")
    square_max_retries: int = Field(default=3, alias="SQUARE_MAX_RETRIES")
    square_retry_base_delay: float = Field(default=0.5, alias="SQUARE_RETRY_BASE_DELAY")

    # Fetch the location at startup and refuse to boot on 401
    verify_location_on_startup: bool = Field(default=True, alias="VERIFY_LOCATION_ON_STARTUP")

    # Where the hosted checkout sends the customer afterwards
    payment_link_redirect_url: str = Field(default="", alias="PAYMENT_LINK_REDIRECT_URL")

    # ==============================================
    # Webhook / reconciliation
    # ==============================================
    # Full URL registered with Square; when empty it's rebuilt from the Host header
    webhook_notification_url: str = Field(default="", alias="WEBHOOK_NOTIFICATION_URL")

    # order_state_sync | payment_status_sync
    reconciliation_strategy: str = Field(default="order_state_sync", alias="RECONCILIATION_STRATEGY")

    # Header key for the admin re-run endpoints
    admin_api_key: str = Field(default="", alias="ADMIN_API_KEY")

    # ==============================================
    # Identity (bearer tokens)
    # ==============================================
    identity_secret_key: str = Field(default="", alias="IDENTITY_SECRET_KEY")
    identity_algorithm: str = Field(default="HS256", alias="IDENTITY_ALGORITHM")

    # Rate limiting
    rate_limit_default: str = Field(default="60/minute", alias="RATE_LIMIT_DEFAULT")
    rate_limit_storage_uri: str = Field(default="memory://", alias="RATE_LIMIT_STORAGE_URI")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    @model_validator(mode='after')
    def validate_production_secrets(self):
        """Square and identity secrets are mandatory in production"""
        if self.environment.lower() != "production":
            return self
        missing = [
            name for name, value in (
                ("SQUARE_ACCESS_TOKEN", self.square_access_token),
                ("SQUARE_SIGNATURE_KEY", self.square_signature_key),
                ("SQUARE_LOCATION_ID", self.square_location_id),
                ("IDENTITY_SECRET_KEY", self.identity_secret_key),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"Missing required settings: {', '.join(missing)}")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def square_base_url(self) -> str:
        """Sandbox unless SQUARE_ENVIRONMENT is production"""
        host = SQUARE_HOSTS.get(self.square_environment.lower(), SQUARE_HOSTS["sandbox"])
        return f"{host}/v2"

    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)
        return origins or ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()
