"""
FastAPI application entry point.
"""
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from invoice_service.config import get_settings

# Sentry initialization (must be before app creation)
settings_early = get_settings()
if settings_early.sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.celery import CeleryIntegration
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings_early.sentry_dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            CeleryIntegration(),
        ],
        traces_sample_rate=0.1,
        profiles_sample_rate=0.1,
        environment="production" if not settings_early.debug else "development",
    )
from invoice_service.api.deps import CORRELATION_HEADER
from invoice_service.api.routes import invoices as invoice_routes
from invoice_service.database import async_session_maker, engine
from invoice_service.services.event_publisher import close_event_publisher
from invoice_service.services.redis_client import close_redis_client

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Get settings
settings = get_settings()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Invoice Service API...")
    logger.info(f"Debug mode: {settings.debug}")

    # Test database connection
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")

    yield

    # Cleanup
    logger.info("Shutting down Invoice Service API...")
    await close_redis_client()
    close_event_publisher()
    await engine.dispose()


# API Tags metadata for OpenAPI documentation
tags_metadata = [
    {
        "name": "invoice",
        "description": "Subscriptions, one-time payments and Stripe webhooks.",
    },
]

# Create FastAPI application
app = FastAPI(
    title="Invoice Service API",
    description="""
## Invoice and payment service

This API provides endpoints for:

- **Subscriptions** - Create a Stripe subscription and its invoice
- **One-time payments** - Charge line items once and store the invoice
- **Webhooks** - Stripe payment events that activate plans
- **Invoices** - List stored invoices

Plan and notification messages are published to RabbitMQ.

### Authentication

When `AUTH_REQUIRED` is set, REST endpoints need a bearer JWT in the `Authorization` header.
The webhook endpoint is verified with the Stripe signature instead.
    """,
    version=VERSION,
    lifespan=lifespan,
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[CORRELATION_HEADER],
)


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    """Attach a correlation id to every request and echo it in the response."""
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return field errors as {field: message} in the standard envelope."""
    errors = {}
    for error in exc.errors():
        loc = [str(part) for part in error["loc"] if part not in ("body", "query", "path")]
        field = ".".join(loc) or "body"
        errors[field] = error["msg"]

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"status": "error", "message": "Validation failed", "data": errors},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": "error", "message": str(exc), "data": None},
    )


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status information
    """
    db_status = "unknown"

    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
            db_status = "healthy"
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Health check - DB error: {e}")

    return {
        "status": "ok",
        "database": db_status,
        "version": VERSION,
    }


# Include routers
app.include_router(invoice_routes.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Welcome to Invoice Service API",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "invoice_service.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
    )
