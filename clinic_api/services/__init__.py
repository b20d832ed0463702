"""Service layer modules."""

# Import service modules (not individual functions) for cleaner access
from clinic_api.services import slot_service
from clinic_api.services import notification_service
from clinic_api.services import appointment_service
from clinic_api.services import recovery_service

__all__ = [
    "slot_service",
    "notification_service",
    "appointment_service",
    "recovery_service",
]
