from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from tripcoin.config import settings
import importlib
import logging
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from tripcoin.errors import BookingCoreError
from tripcoin.logging_setup import setup_logging, TRACE_ID_CTX
from tripcoin.redis_client import redis_client
import uuid
import sentry_sdk
from sentry_sdk.integrations.asgi import SentryAsgiMiddleware
from tripcoin.metrics import update_queue_depth

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

# initialize logging and Sentry
setup_logging()
if settings.SENTRY_DSN:
    sentry_sdk.init(dsn=settings.SENTRY_DSN)
    app.add_middleware(SentryAsgiMiddleware)

# error kind -> HTTP status
STATUS_BY_KIND = {
    "not_found": 404,
    "invalid_state": 409,
    "has_active_bookings": 409,
    "resource_conflict": 409,
    "capacity_exceeded": 409,
    "seat_conflict": 409,
    "insufficient_balance": 409,
    "temporal_violation": 422,
    "invariant_violation": 422,
    "permission_denied": 403,
    "storage_error": 503,
}


@app.middleware("http")
async def add_trace_id(request: Request, call_next):
    trace_id = request.headers.get("x-trace-id") or str(uuid.uuid4())
    TRACE_ID_CTX.set(trace_id)
    response = await call_next(request)
    response.headers["X-Trace-Id"] = trace_id
    return response


@app.exception_handler(BookingCoreError)
async def booking_core_error_handler(request: Request, exc: BookingCoreError):
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error("request failed: %s", exc.message, extra={"kind": exc.kind, "path": request.url.path})
    else:
        logger.info("request refused: %s", exc.message, extra={"kind": exc.kind, "path": request.url.path})
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# routers mounted under /<module>
MODULES = [
    "trips",
    "bookings",
    "ledger",
    "documents",
]


for mod in MODULES:
    pkg = importlib.import_module(f"tripcoin.modules.{mod}.router")
    app.include_router(pkg.router, prefix=f"/{mod}", tags=[mod])


@app.get("/")
async def root():
    return {"app": settings.APP_NAME, "status": "ok"}


@app.get("/metrics")
async def metrics():
    # update dynamic gauges before scraping
    try:
        await update_queue_depth()
    except Exception:
        logger.warning("could not read notification DLQ depth", exc_info=True)
    content = generate_latest()
    return Response(content=content, media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready():
    # simple readiness: check redis
    try:
        await redis_client.ping()
    except Exception:
        return Response(status_code=503, content="redis unavailable")
    return {"status": "ready"}
