"""API routers."""

from clinic_api.routers.appointments import router as appointments_router

__all__ = [
    "appointments_router",
]
