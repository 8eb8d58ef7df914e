"""Errors raised by the scheduling core.

Every error knows the HTTP status it maps to and a stable ``code``
that travels on the wire next to the message, so that clients can
tell a blocked day apart from any other bad request.
"""

from __future__ import annotations

from typing import Any, ClassVar


class SchedulingError(Exception):
    """Base class for the errors of the scheduling core."""

    status_code: ClassVar[int] = 500
    code: ClassVar[str] = "SchedulingError"
    default_message: ClassVar[str] = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        """Store the user facing message."""
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        """Return the JSON body for this error."""
        return {"error": self.message, "code": self.code}


class Unauthorized(SchedulingError):
    """Missing or wrong bearer token."""

    status_code = 401
    code = "Unauthorized"
    default_message = "Unauthorized"


class ValidationError(SchedulingError):
    """A required field is missing or malformed."""

    status_code = 400
    code = "ValidationError"
    default_message = "Invalid request"


class DuplicateEmail(ValidationError):
    """A user with the same email already exists."""

    code = "DuplicateEmail"
    default_message = "A user with this email already exists."


class BlockedDay(SchedulingError):
    """A shift was placed on a day the user has blocked."""

    status_code = 400
    code = "BlockedDay"
    default_message = "Cannot add shift to a blocked day. Please unblock the day first."


class AlreadyBlocked(SchedulingError):
    """The day is already blocked."""

    status_code = 400
    code = "AlreadyBlocked"
    default_message = (
        "This day is already blocked. "
        "Please unblock it first or choose a different date."
    )


class ShiftsExist(SchedulingError):
    """A day with active shifts cannot be blocked."""

    status_code = 400
    code = "ShiftsExist"
    default_message = (
        "Cannot block a day that already has shifts. Please remove all shifts first."
    )


class NotFound(SchedulingError):
    """The record to update or delete does not exist."""

    status_code = 404
    code = "NotFound"
    default_message = "Not found"


class StoreError(SchedulingError):
    """The underlying data store failed."""

    status_code = 500
    code = "StoreError"
    default_message = "Data store error"


_ERRORS_BY_CODE: dict[str, type[SchedulingError]] = {
    cls.code: cls
    for cls in (
        Unauthorized,
        ValidationError,
        DuplicateEmail,
        BlockedDay,
        AlreadyBlocked,
        ShiftsExist,
        NotFound,
        StoreError,
    )
}


class _UnknownError(SchedulingError):
    """Error with a code this version does not know about."""

    def __init__(self, message: str, status_code: int, code: str) -> None:
        super().__init__(message)
        self.status_code = status_code  # type: ignore[misc]
        self.code = code  # type: ignore[misc]


def error_from_payload(
    status_code: int,
    payload: Any,  # noqa: ANN401
) -> SchedulingError:
    """Rebuild the exception described by an error response.

    Falls back on the status code when the body carries no known code,
    so a plain ``{"error": "Unauthorized"}`` still becomes ``Unauthorized``.
    """
    message = None
    code = None
    if isinstance(payload, dict):
        message = payload.get("error")
        code = payload.get("code")

    cls = _ERRORS_BY_CODE.get(code or "")
    if cls is None:
        if status_code == Unauthorized.status_code:
            cls = Unauthorized
        elif status_code == NotFound.status_code:
            cls = NotFound
        elif status_code == ValidationError.status_code and not code:
            cls = ValidationError
    if cls is not None:
        return cls(message)
    return _UnknownError(
        message or f"HTTP {status_code}",
        status_code,
        code or SchedulingError.code,
    )
