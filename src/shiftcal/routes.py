"""REST API routes."""

from __future__ import annotations

import secrets
from functools import wraps
from logging import getLogger
from typing import TYPE_CHECKING, Any, Callable

from flask import Blueprint, current_app, jsonify, request

from .errors import SchedulingError, ValidationError

if TYPE_CHECKING:  # pragma: no cover
    from flask import Flask, Response

    from .scheduling import SchedulingService

logger = getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


def get_service() -> SchedulingService:
    """Return the scheduling service registered on the current app."""
    return current_app.extensions["scheduling"]


def token_required(f: Callable) -> Callable:
    """Reject requests without the right bearer token."""

    @wraps(f)
    def decorated_function(*args, **kwargs) -> Response | tuple[Response, int]:  # noqa: ANN002, ANN003
        """Compare the Authorization header with the configured token."""
        expected = f"Bearer {current_app.config['API_TOKEN']}"
        received = request.headers.get("Authorization", "")
        if not secrets.compare_digest(received.encode(), expected.encode()):
            logger.warning("Unauthorized request to %s", request.path)
            return jsonify({"error": "Unauthorized"}), 401
        return f(*args, **kwargs)

    return decorated_function


def _json_body() -> dict[str, Any]:
    """Return the JSON object sent in the request body."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        msg = "Request body must be a JSON object"
        raise ValidationError(msg)
    return data


@api.app_errorhandler(SchedulingError)
def handle_scheduling_error(e: SchedulingError) -> tuple[Response, int]:
    """Turn a scheduling error into its JSON response."""
    if e.status_code >= 500:  # noqa: PLR2004
        logger.error("%s: %s", e.code, e.message)
    return jsonify(e.to_dict()), e.status_code


@api.route("/health")
def health() -> Response:
    """Report that the API is up. No token needed, nothing else disclosed."""
    return jsonify({"status": "ok"})


# Users


@api.route("/users", methods=["GET"])
@token_required
def list_users() -> Response:
    """Return every user."""
    return jsonify([user.to_dict() for user in get_service().list_users()])


@api.route("/users", methods=["POST"])
@token_required
def create_user() -> tuple[Response, int]:
    """Create a user."""
    data = _json_body()
    user = get_service().create_user(data.get("name"), data.get("email"))  # type: ignore[arg-type]
    return jsonify(user.to_dict()), 201


# Shifts


@api.route("/shifts", methods=["POST"])
@token_required
def create_shift() -> tuple[Response, int]:
    """Create a shift, unless the day is blocked."""
    data = _json_body()
    shift = get_service().create_shift(
        data.get("userId"),  # type: ignore[arg-type]
        data.get("date"),
        data.get("fromTime"),  # type: ignore[arg-type]
        data.get("toTime"),  # type: ignore[arg-type]
    )
    return jsonify(shift.to_dict()), 201


@api.route("/shifts/week", methods=["POST"])
@token_required
def create_week_shifts() -> tuple[Response, int]:
    """Create the same shift from Monday to Friday, skipping blocked days."""
    data = _json_body()
    result = get_service().create_week_shifts(
        data.get("userId"),  # type: ignore[arg-type]
        data.get("date"),
        data.get("fromTime"),  # type: ignore[arg-type]
        data.get("toTime"),  # type: ignore[arg-type]
    )
    return jsonify(result.to_dict()), 201


@api.route("/shifts/<user_id>", methods=["GET"])
@token_required
def list_shifts(user_id: str) -> Response:
    """Return the active shifts of a user."""
    return jsonify([shift.to_dict() for shift in get_service().list_shifts(user_id)])


@api.route("/shifts/<shift_id>", methods=["PUT"])
@token_required
def update_shift(shift_id: str) -> Response:
    """Update a shift. ``deleted: true`` soft deletes it."""
    data = _json_body()
    deleted = data.get("deleted")
    if deleted is not None and not isinstance(deleted, bool):
        msg = "deleted must be true or false"
        raise ValidationError(msg)

    shift = get_service().update_shift(
        shift_id,
        data.get("userId"),
        data.get("date"),
        data.get("fromTime"),
        data.get("toTime"),
        deleted=deleted,
    )
    return jsonify(shift.to_dict())


@api.route("/shifts/<shift_id>", methods=["DELETE"])
@token_required
def delete_shift(shift_id: str) -> Response:
    """Soft delete a shift."""
    shift = get_service().soft_delete_shift(shift_id)
    return jsonify({"message": "Shift soft deleted", "shift": shift.to_dict()})


# Blocked days


@api.route("/blocked", methods=["POST"])
@token_required
def create_blocked_time() -> tuple[Response, int]:
    """Block a day."""
    data = _json_body()
    blocked = get_service().create_blocked_time(
        data.get("userId"),  # type: ignore[arg-type]
        data.get("date"),
        data.get("reason"),
    )
    return jsonify(blocked.to_dict()), 201


@api.route("/blocked/<user_id>", methods=["GET"])
@token_required
def list_blocked_times(user_id: str) -> Response:
    """Return the active blocked days of a user."""
    blocked_times = get_service().list_blocked_times(user_id)
    return jsonify([blocked.to_dict() for blocked in blocked_times])


@api.route("/blocked/<blocked_time_id>", methods=["DELETE"])
@token_required
def delete_blocked_time(blocked_time_id: str) -> Response:
    """Soft delete a blocked day."""
    blocked = get_service().soft_delete_blocked_time(blocked_time_id)
    return jsonify(
        {"message": "Blocked day soft deleted", "blockedTime": blocked.to_dict()},
    )


# Calendar


@api.route("/calendar/<user_id>", methods=["GET"])
@token_required
def calendar(user_id: str) -> Response:
    """Return shifts and blocked days of a user in one response."""
    return jsonify(get_service().get_calendar_snapshot(user_id).to_dict())


def register_routes(app: Flask) -> Blueprint:
    """Register the routes with the app."""
    app.register_blueprint(api)
    return api
