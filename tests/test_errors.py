"""Tests for the error types."""

from __future__ import annotations

import pytest
from shiftcal.errors import (
    AlreadyBlocked,
    BlockedDay,
    DuplicateEmail,
    NotFound,
    SchedulingError,
    ShiftsExist,
    StoreError,
    Unauthorized,
    ValidationError,
    error_from_payload,
)


def test_to_dict() -> None:
    """The JSON body carries the message and the code."""
    assert BlockedDay().to_dict() == {
        "error": "Cannot add shift to a blocked day. Please unblock the day first.",
        "code": "BlockedDay",
    }
    assert NotFound("Shift not found").to_dict() == {
        "error": "Shift not found",
        "code": "NotFound",
    }


def test_status_codes() -> None:
    """Each error maps to its HTTP status."""
    assert Unauthorized.status_code == 401
    assert ValidationError.status_code == 400
    assert DuplicateEmail.status_code == 400
    assert BlockedDay.status_code == 400
    assert AlreadyBlocked.status_code == 400
    assert ShiftsExist.status_code == 400
    assert NotFound.status_code == 404
    assert StoreError.status_code == 500


@pytest.mark.parametrize(
    "cls",
    [
        Unauthorized,
        ValidationError,
        DuplicateEmail,
        BlockedDay,
        AlreadyBlocked,
        ShiftsExist,
        NotFound,
        StoreError,
    ],
)
def test_from_payload(cls: type[SchedulingError]) -> None:
    """A response body is turned back into its exception."""
    error = error_from_payload(cls.status_code, {"error": "msg", "code": cls.code})

    assert type(error) is cls
    assert error.message == "msg"


@pytest.mark.parametrize(
    ("status_code", "cls"),
    [(401, Unauthorized), (404, NotFound), (400, ValidationError)],
)
def test_from_payload_without_code(
    status_code: int,
    cls: type[SchedulingError],
) -> None:
    """Without a code the status decides."""
    error = error_from_payload(status_code, {"error": "msg"})

    assert type(error) is cls


def test_from_payload_unknown_code() -> None:
    """Unknown codes keep their status and code."""
    error = error_from_payload(409, {"error": "Conflict", "code": "Conflict"})

    assert isinstance(error, SchedulingError)
    assert error.status_code == 409
    assert error.code == "Conflict"
    assert error.message == "Conflict"


def test_from_payload_no_body() -> None:
    """A body that is not JSON still gives an error."""
    error = error_from_payload(502, None)

    assert error.status_code == 502
    assert error.message == "HTTP 502"
