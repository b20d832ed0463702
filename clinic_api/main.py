"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.orm import Session

from clinic_api.core.config import settings
from clinic_api.core.deps import get_db
from clinic_api.core.errors import BookingError
from clinic_api.core.rate_limit import limiter
from clinic_api.db.session import SessionLocal

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,
    )
    logger.info("Sentry initialized for error tracking")


# ============================================================================
# Lifespan: reminder scheduler + recovery
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    from clinic_api.services import recovery_service
    from clinic_api.services.reminder_scheduler import ReminderScheduler

    reminders = ReminderScheduler(SessionLocal)
    app.state.reminder_scheduler = reminders

    if settings.SCHEDULER_ENABLED:
        reminders.start()
        db = SessionLocal()
        try:
            recovery_service.recover_all(db, reminders)
        finally:
            db.close()
    else:
        logger.info("ReminderScheduler is disabled, skipping start")

    yield

    reminders.shutdown()


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Clinic Booking API",
    description="Appointment booking with slot allocation and reminders",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    """Fallback for service errors not translated by a router."""
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", "x-auth-token"],
)

# ============================================================================
# Routers
# ============================================================================

from clinic_api.routers import appointments

app.include_router(appointments.router, prefix="/appointments", tags=["appointments"])


@app.get("/health")
def health(request: Request, db: Session = Depends(get_db)):
    """
    Health check endpoint.

    Verifies database connectivity and reports the reminder scheduler.
    """
    db.execute(text("SELECT 1"))
    reminders = getattr(request.app.state, "reminder_scheduler", None)
    if reminders is None:
        scheduler_running, armed = False, 0
    else:
        scheduler_running, armed = reminders.running, len(reminders)
    return {
        "status": "ok",
        "env": settings.ENV,
        "version": settings.VERSION,
        "scheduler_running": scheduler_running,
        "armed_reminders": armed,
    }
