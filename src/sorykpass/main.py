"""
FastAPI application entry point
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from contextlib import asynccontextmanager
from sqlalchemy import text
from slowapi.errors import RateLimitExceeded
import logging

from sorykpass.core.config import settings
from sorykpass.core.database import engine, AsyncSessionLocal
from sorykpass.core.logging_config import setup_logging
from sorykpass.core.metrics import get_metrics
from sorykpass.core.redis import redis_client
from sorykpass.api import checkout, payments, seating, verify
from sorykpass.api.deps import (
    close_payment_gateway,
    get_payment_gateway,
    get_seat_lock_store,
    get_ticket_notifier,
)
from sorykpass.middleware.rate_limiter import limiter
from sorykpass.middleware.tracing import TracingMiddleware
from sorykpass.services import (
    ExpiryWorker,
    PaymentOrchestrator,
    SeatReservationManager,
    SeatStoreUnavailableError,
)

logger = logging.getLogger(__name__)


def _build_expiry_worker() -> ExpiryWorker:
    reservations = SeatReservationManager(get_seat_lock_store(), AsyncSessionLocal)
    orchestrator = PaymentOrchestrator(
        AsyncSessionLocal,
        reservations,
        get_payment_gateway(),
        get_ticket_notifier(),
    )
    return ExpiryWorker(orchestrator)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for startup and shutdown"""
    setup_logging()
    logger.info(f"🚀 Starting {settings.APP_NAME} v{settings.APP_VERSION}...")

    # Test database connection
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("✅ Database connection successful")
    except Exception as e:
        logger.error(f"❌ Database connection failed: {e}")
        raise

    logger.info("🔴 Connecting to Redis...")
    await redis_client.connect()

    worker = None
    if settings.EXPIRY_WORKER_ENABLED:
        logger.info("⏰ Starting expiry worker...")
        worker = _build_expiry_worker()
        await worker.start()

    yield

    logger.info("🛑 Shutting down...")
    if worker:
        await worker.stop()
    await close_payment_gateway()
    await redis_client.close()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Seat holds, checkout and Webpay payment reconciliation for SorykPass",
    lifespan=lifespan,
)

app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"⚠️ Rate limit exceeded for {request.url.path}")
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": "Too many requests. Please slow down.",
            "detail": str(exc.detail),
        },
        headers={"Retry-After": "60"},
    )


@app.exception_handler(SeatStoreUnavailableError)
async def seat_store_unavailable_handler(request: Request, exc: SeatStoreUnavailableError):
    logger.error(f"❌ Seat lock store unavailable on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"success": False, "error": "Seat reservations are temporarily unavailable"},
        headers={"Retry-After": "5"},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
        for error in exc.errors()
    ]


app.add_middleware(TracingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "redis": "healthy" if await redis_client.is_healthy() else "unavailable",
    }


@app.get("/metrics", tags=["Monitoring"])
async def metrics():
    """Prometheus scrape endpoint"""
    data, content_type = get_metrics()
    return Response(content=data, media_type=content_type)


app.include_router(seating.router, prefix="/api/v1", tags=["Seating"])
app.include_router(checkout.router, prefix="/api/v1", tags=["Checkout"])
app.include_router(payments.router, prefix="/api/v1", tags=["Payments"])
app.include_router(verify.router, prefix="/api/v1", tags=["Tickets"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "sorykpass.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info",
    )
