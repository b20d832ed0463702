"""Rate limiting configuration for the clinic API."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from clinic_api.core.config import settings

# Single-process service: reminders are in-process too, so in-memory
# storage matches the deployment model.
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
)


def booking_limit() -> str:
    """Per-client booking request limit."""
    return f"{max(settings.RATE_LIMIT_BOOKING, 1)}/minute"
