from __future__ import annotations


class BookingError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BookingError, ValueError):
    """Malformed input, past start time or a slot that is already taken.

    ``errors`` maps the offending request field to its messages so the HTTP
    layer can answer with ``{"errors": {...}}``.
    """

    status_code = 422

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(reason)
        self.field = field
        self.errors: dict[str, list[str]] = {field: [reason]}


class UnauthenticatedError(BookingError):
    status_code = 401


class ForbiddenError(BookingError):
    status_code = 403


class NotFoundError(BookingError, LookupError):
    status_code = 404


class ConflictError(BookingError):
    status_code = 409


class StorageError(BookingError, RuntimeError):
    status_code = 500
