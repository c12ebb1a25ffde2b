"""
Shipsarthi - Shipment Status Reconciliation API
"""
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime

from shipsarthi.core.limiter import apply_rate_limiting
from shipsarthi.api.v1 import router as api_v1_router
from shipsarthi.core.settings import settings
from shipsarthi.exceptions import QueueFullError, ShipsarthiException
from shipsarthi.logging_config import setup_logging, get_logger

# Setup structured logging
setup_logging()
logger = get_logger(__name__)

# Error tracking only when a DSN is configured
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        environment=settings.ENVIRONMENT,
        release=f"shipsarthi@{settings.VERSION}",
    )
else:
    logger.info("SENTRY_DSN not set - error tracking disabled")


# ===================
# Security Headers Middleware
# ===================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def init_database():
    """Initialize database tables on startup (idempotent)."""
    try:
        from shipsarthi.db.session import engine
        from shipsarthi.db.base import Base
        import shipsarthi.models  # noqa: F401
        logger.info("Checking database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ready")
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")


def build_components(app: FastAPI) -> None:
    """Create the webhook pipeline and the tracking reconciler on app.state."""
    from shipsarthi.db.session import SessionLocal
    from shipsarthi.integrations.delhivery import DelhiveryClient
    from shipsarthi.integrations.image_storage import LocalImageStore
    from shipsarthi.services.notification_service import LoggingNotifier
    from shipsarthi.services.tracking_service import TrackingReconciler
    from shipsarthi.services.webhook_queue import WebhookQueue
    from shipsarthi.services.webhook_service import WebhookService

    notifier = LoggingNotifier()
    webhook_service = WebhookService(SessionLocal, LocalImageStore(), notifier)
    app.state.webhook_service = webhook_service
    app.state.webhook_queue = WebhookQueue(webhook_service.process)

    app.state.tracking_reconciler = None
    if settings.DELHIVERY_API_TOKEN:
        app.state.tracking_reconciler = TrackingReconciler(DelhiveryClient(), SessionLocal, notifier)
    else:
        logger.warning("DELHIVERY_API_TOKEN not set - tracking reconciler disabled")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(
        "Starting Shipsarthi API",
        extra={
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "debug": settings.DEBUG,
        }
    )
    init_database()
    build_components(app)

    app.state.webhook_queue.start()
    reconciler = app.state.tracking_reconciler
    if reconciler is not None and settings.TRACKING_ENABLED:
        reconciler.start()

    yield

    logger.info("Shutting down Shipsarthi API")
    if reconciler is not None:
        reconciler.stop(wait=False)
    app.state.webhook_queue.stop(timeout=5)


# Create FastAPI app
app = FastAPI(
    title="Shipsarthi API",
    description="Shipment status reconciliation for the Delhivery aggregator",
    version=settings.VERSION,
    lifespan=lifespan,
)

app.state.limiter, RATE_LIMITS_ENABLED = apply_rate_limiting(app)

# Security headers middleware (outermost)
app.add_middleware(SecurityHeadersMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "X-Request-ID"],
)


# ===================
# Exception Handlers
# ===================

def _error_response(exc: ShipsarthiException, headers=None) -> JSONResponse:
    error_dict = exc.to_dict()
    error_dict["timestamp"] = datetime.utcnow().isoformat() + "Z"
    return JSONResponse(status_code=exc.status_code, content=error_dict, headers=headers)


@app.exception_handler(QueueFullError)
async def queue_full_handler(request: Request, exc: QueueFullError):
    logger.error(
        f"Webhook rejected, queue full: {exc.message}",
        extra={"path": request.url.path, "details": exc.details},
    )
    return _error_response(exc, headers={"Retry-After": str(exc.retry_after)})


@app.exception_handler(ShipsarthiException)
async def shipsarthi_exception_handler(request: Request, exc: ShipsarthiException):
    logger.warning(
        f"Shipsarthi Exception: {exc.error_code} - {exc.message}",
        extra={"error_code": exc.error_code, "details": exc.details, "path": request.url.path}
    )
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors.append({"field": field, "message": error["msg"], "type": error["type"]})
    logger.warning(f"Validation error on {request.url.path}", extra={"errors": errors})
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": {"errors": errors},
            "timestamp": datetime.utcnow().isoformat() + "Z"
        },
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.url.path}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "DATABASE_ERROR",
            "message": "A database error occurred. Please try again.",
            "timestamp": datetime.utcnow().isoformat() + "Z"
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.url.path}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
            "timestamp": datetime.utcnow().isoformat() + "Z"
        },
    )


# Include API routes
app.include_router(api_v1_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"message": "Shipsarthi API", "version": settings.VERSION, "status": "online"}


@app.get("/health")
async def health_check():
    queue = getattr(app.state, "webhook_queue", None)
    reconciler = getattr(app.state, "tracking_reconciler", None)
    return {
        "status": "healthy",
        "webhook_queue": queue.get_stats() if queue is not None else None,
        "tracking": reconciler.get_status() if reconciler is not None else None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("shipsarthi.main:app", host="0.0.0.0", port=8001, reload=True)
