"""Typed failures raised by the booking services.

Routers translate these into HTTP responses; the reminder scheduler and
recovery loader only ever log them.
"""


class BookingError(Exception):
    """Base exception for booking errors."""

    status_code = 500


class ValidationError(BookingError):
    """Malformed or missing input, or a slot in the past."""

    status_code = 400


class ConflictError(BookingError):
    """The requested slot is already held by an active appointment."""

    status_code = 400


class AuthorizationError(BookingError):
    """Actor is neither the owner nor an administrator."""

    status_code = 403


class NotFoundError(BookingError):
    """Unknown appointment, provider, or notification."""

    status_code = 404


class DependencyFailure(BookingError):
    """Storage or notification sink unavailable."""

    status_code = 503
