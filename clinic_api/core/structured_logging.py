"""Structured logging helpers."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    user_id: UUID | str | None = None,
    appointment_id: UUID | str | None = None,
    provider_id: UUID | str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict for ``extra=`` with only the provided fields."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = str(user_id)
    if appointment_id:
        context["appointment_id"] = str(appointment_id)
    if provider_id:
        context["provider_id"] = str(provider_id)
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
