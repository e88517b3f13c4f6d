import logging
import re

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from eventmarket.database import init_db
from eventmarket.config import get_settings
from eventmarket.errors import ServiceError
from eventmarket.rate_limit import limiter
from eventmarket.routers import (
    users, venues, categories, events, purchases, promo_codes, favorites,
    tickets, notifications, payments,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Event Marketplace",
    description="REST API for events with dynamic pricing, promo codes and Stripe checkout",
    version="1.0.0",
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ============== Global Error Handlers ==============

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Domain errors raised by the service layer."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.error, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "detail": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return a consistent JSON format for validation errors."""
    errors = []
    for err in exc.errors():
        field = " -> ".join(str(loc) for loc in err["loc"] if loc != "body")
        errors.append(f"{field}: {err['msg']}" if field else err["msg"])
    return JSONResponse(
        status_code=422,
        content={"error": "Validation error", "detail": "; ".join(errors)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all for unhandled exceptions. Logs the traceback, returns a safe message."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": "An unexpected error occurred."},
    )

# API routers (JSON endpoints, prefixed with /api)
# Fixed /events/... paths must be registered before /events/{event_id}
api_prefix = "/api"
app.include_router(users.router, prefix=api_prefix)
app.include_router(venues.router, prefix=api_prefix)
app.include_router(categories.router, prefix=api_prefix)
app.include_router(purchases.router, prefix=api_prefix)
app.include_router(promo_codes.router, prefix=api_prefix)
app.include_router(favorites.router, prefix=api_prefix)
app.include_router(events.router, prefix=api_prefix)
app.include_router(tickets.router, prefix=api_prefix)
app.include_router(notifications.router, prefix=api_prefix)

# Non-API routers (keep at root)
app.include_router(payments.router)   # /webhooks/stripe


# ============== CORS Middleware ==============
_settings = get_settings()
_origins = [o.strip() for o in _settings.cors_origins.split(",") if o.strip()] if _settings.cors_origins else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============== API Key Auth Middleware ==============
# Protects catalogue writes (venues, categories, events) when ADMIN_API_KEY is set.
# Purchases, favorites, tickets and the Stripe webhook stay open.

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
ADMIN_WRITE_PATHS = re.compile(r"^/api/(venues|categories)(/.*)?$|^/api/events(/\d+)?/?$")


class ApiKeyAuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        api_key = get_settings().admin_api_key

        if not api_key:
            return await call_next(request)

        if request.method not in WRITE_METHODS or not ADMIN_WRITE_PATHS.match(request.url.path):
            return await call_next(request)

        provided_key = request.headers.get("x-admin-key")
        if not provided_key or provided_key != api_key:
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "detail": "Invalid or missing API key."},
            )

        return await call_next(request)


app.add_middleware(ApiKeyAuthMiddleware)


@app.on_event("startup")
def on_startup():
    """Initialize database and scheduler on startup."""
    init_db()
    try:
        from eventmarket.services.scheduler import (
            init_scheduler, schedule_hold_sweep, bootstrap_pending_deliveries,
        )
        init_scheduler()
        schedule_hold_sweep()
        bootstrap_pending_deliveries()
    except Exception as e:
        logger.warning(f"Scheduler init note: {e}")


@app.on_event("shutdown")
def on_shutdown():
    """Shut down scheduler gracefully."""
    try:
        from eventmarket.services.scheduler import shutdown_scheduler
        shutdown_scheduler()
    except Exception:
        logger.exception("Scheduler shutdown failed")


@app.get("/health")
def health_check():
    """Health check endpoint. Verifies DB connectivity."""
    from sqlalchemy import text
    from eventmarket.database import SessionLocal

    checks = {"db": "ok"}
    status = "healthy"

    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
    except Exception as e:
        checks["db"] = str(e)
        status = "unhealthy"

    code = 200 if status == "healthy" else 503
    return JSONResponse(status_code=code, content={"status": status, "checks": checks})
