from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import logging
import uuid

from .config import settings
from .database import create_tables
from .errors import GatewayError, register_exception_handlers
from .services.dispatcher import EventDispatcher
from .services.square_client import SquareClient
from .utils.keyed_lock import KeyedLock
from .utils.logging_config import setup_logging, set_request_context, clear_request_context
from .utils.rate_limiter import limiter

from .routers import admin, customer, events, health, location

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging(settings.log_level, json_format=settings.log_json)

    logger.info(f"Starting booking service ({settings.environment})")
    logger.info(f"CORS origins: {settings.cors_origins}")

    create_tables()

    square_client = SquareClient.from_settings(settings)
    app.state.square_client = square_client

    if settings.verify_location_on_startup:
        try:
            app.state.location = await square_client.retrieve_location()
        except GatewayError as e:
            if e.status_code == 401:
                await square_client.aclose()
                raise RuntimeError("Square rejected the access token; check SQUARE_ACCESS_TOKEN") from e
            logger.warning(f"Could not fetch Square location at startup: {e}")
        else:
            logger.info(f"Square location: {app.state.location.get('name')} ({settings.square_environment})")

    yield

    logger.info("Shutting down booking service")
    await square_client.aclose()


# Create FastAPI app
app = FastAPI(
    title="Booking Service API",
    description="Square bookings, payment links and webhook reconciliation",
    version="1.0.0",
    lifespan=lifespan
)

app.state.limiter = limiter
app.state.dispatcher = EventDispatcher()
app.state.locks = KeyedLock()


# ================================
# CORS MIDDLEWARE
# ================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


# Request ID Middleware
class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        set_request_context(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(SlowAPIMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


# Rate limit handler
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests, try again later"}
    )


register_exception_handlers(app, echo_details=settings.is_development)


# Include routers
app.include_router(events.router)
app.include_router(events.live_router)
app.include_router(customer.router)
app.include_router(location.router)
app.include_router(admin.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "message": "Booking Service API",
        "version": "1.0.0",
        "docs": "/docs",
        "status": "running"
    }
