"""HTTP client for the scheduling API, with a per-user cache.

Reads go through :class:`~shiftcal.cache.ResourceCache`: a cached value
is returned without touching the network unless ``force_refresh`` is
set. Writes always hit the API and, once they succeed, invalidate the
entries they make stale, including the calendar snapshot of the user.

Two fetches of the same key in flight are not merged; whichever
answers last is what stays in the cache.
"""

from __future__ import annotations

from copy import deepcopy
from datetime import date, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any

import httpx

from .cache import Resource, ResourceCache
from .errors import error_from_payload
from .scheduling import DEFAULT_USER_EMAIL, DEFAULT_USER_NAME

if TYPE_CHECKING:  # pragma: no cover
    from types import TracebackType

logger = getLogger(__name__)


def _date_param(value: date | datetime | str) -> str:
    """Serialise a date for the API."""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class SchedulingClient:
    """Talks to the scheduling API and caches what it reads."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        cache: ResourceCache | None = None,
    ) -> None:
        """Create the client.

        Args:
            base_url: Base URL of the API, for example http://localhost:3000/api
            token: Bearer token of the API
            timeout: Timeout of each request in seconds
            transport: Optional httpx transport, for tests
            cache: Optional cache to share between clients
        """
        self.base_url = base_url.rstrip("/")
        self.cache = cache if cache is not None else ResourceCache()
        self._http = httpx.Client(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        """Close the underlying connections."""
        self._http.close()

    def __enter__(self) -> SchedulingClient:
        """Use the client as a context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Close the client."""
        self.close()

    def _request(self, method: str, path: str, json: Any = None) -> Any:  # noqa: ANN401
        """Send a request and return the decoded JSON body.

        Error responses are raised as the matching
        :class:`~shiftcal.errors.SchedulingError`. Transport errors
        propagate as raised by httpx.
        """
        try:
            response = self._http.request(method, path, json=json)
        except httpx.HTTPError:
            logger.exception("API request failed: %s %s", method, path)
            raise

        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            error = error_from_payload(response.status_code, payload)
            logger.warning(
                "API error: %s %s -> %s %s",
                method,
                path,
                response.status_code,
                error.message,
            )
            raise error
        return response.json()

    def _fetch(
        self,
        resource: Resource,
        user_id: str | None,
        path: str,
        *,
        force_refresh: bool,
    ) -> Any:  # noqa: ANN401
        """Return a copy of the cached value, fetching it on a miss.

        Callers get their own copy, so changing what they receive never
        changes the cache.
        """
        if not force_refresh and self.cache.contains(resource, user_id):
            logger.debug("Cache hit %s/%s", resource.value, user_id)
            return deepcopy(self.cache.get(resource, user_id))
        value = self._request("GET", path)
        self.cache.put(resource, user_id, value)
        return deepcopy(value)

    # Users

    def get_users(self, *, force_refresh: bool = False) -> list[dict[str, Any]]:
        """Return every user."""
        return self._fetch(Resource.USERS, None, "/users", force_refresh=force_refresh)

    def create_user(self, name: str, email: str) -> dict[str, Any]:
        """Create a user."""
        user = self._request("POST", "/users", {"name": name, "email": email})
        self.cache.invalidate_for_write(Resource.USERS, None)
        return user

    def ensure_user(
        self,
        name: str = DEFAULT_USER_NAME,
        email: str = DEFAULT_USER_EMAIL,
    ) -> dict[str, Any]:
        """Return the first user, creating a default one if there are none."""
        users = self.get_users()
        if users:
            return users[0]
        return self.create_user(name, email)

    # Shifts

    def create_shift(
        self,
        user_id: str,
        date: date | datetime | str,
        from_time: str,
        to_time: str,
    ) -> dict[str, Any]:
        """Create a shift."""
        shift = self._request(
            "POST",
            "/shifts",
            {
                "userId": user_id,
                "date": _date_param(date),
                "fromTime": from_time,
                "toTime": to_time,
            },
        )
        self.cache.invalidate_for_write(Resource.SHIFTS, user_id)
        return shift

    def create_week_shifts(
        self,
        user_id: str,
        date: date | datetime | str,
        from_time: str,
        to_time: str,
    ) -> dict[str, Any]:
        """Create a shift on every weekday of the week of ``date``."""
        result = self._request(
            "POST",
            "/shifts/week",
            {
                "userId": user_id,
                "date": _date_param(date),
                "fromTime": from_time,
                "toTime": to_time,
            },
        )
        self.cache.invalidate_for_write(Resource.SHIFTS, user_id)
        return result

    def get_shifts(
        self,
        user_id: str,
        *,
        force_refresh: bool = False,
    ) -> list[dict[str, Any]]:
        """Return the active shifts of a user."""
        return self._fetch(
            Resource.SHIFTS,
            user_id,
            f"/shifts/{user_id}",
            force_refresh=force_refresh,
        )

    def update_shift(  # noqa: PLR0913
        self,
        shift_id: str,
        user_id: str,
        date: date | datetime | str | None = None,
        from_time: str | None = None,
        to_time: str | None = None,
        *,
        deleted: bool | None = None,
    ) -> dict[str, Any]:
        """Update a shift. Only the given fields are sent."""
        body: dict[str, Any] = {"userId": user_id}
        if date is not None:
            body["date"] = _date_param(date)
        if from_time is not None:
            body["fromTime"] = from_time
        if to_time is not None:
            body["toTime"] = to_time
        if deleted is not None:
            body["deleted"] = deleted

        shift = self._request("PUT", f"/shifts/{shift_id}", body)
        self.cache.invalidate_for_write(Resource.SHIFTS, user_id)
        return shift

    def delete_shift(self, shift_id: str, user_id: str) -> dict[str, Any]:
        """Soft delete a shift of the given user."""
        result = self._request("DELETE", f"/shifts/{shift_id}")
        self.cache.invalidate_for_write(Resource.SHIFTS, user_id)
        return result

    # Blocked days

    def create_blocked_time(
        self,
        user_id: str,
        date: date | datetime | str,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """Block a day."""
        blocked = self._request(
            "POST",
            "/blocked",
            {"userId": user_id, "date": _date_param(date), "reason": reason},
        )
        self.cache.invalidate_for_write(Resource.BLOCKED_TIMES, user_id)
        return blocked

    def get_blocked_times(
        self,
        user_id: str,
        *,
        force_refresh: bool = False,
    ) -> list[dict[str, Any]]:
        """Return the active blocked days of a user."""
        return self._fetch(
            Resource.BLOCKED_TIMES,
            user_id,
            f"/blocked/{user_id}",
            force_refresh=force_refresh,
        )

    def delete_blocked_time(self, blocked_time_id: str, user_id: str) -> dict[str, Any]:
        """Soft delete a blocked day of the given user."""
        result = self._request("DELETE", f"/blocked/{blocked_time_id}")
        self.cache.invalidate_for_write(Resource.BLOCKED_TIMES, user_id)
        return result

    # Calendar

    def get_calendar_data(
        self,
        user_id: str,
        *,
        force_refresh: bool = False,
    ) -> dict[str, list[dict[str, Any]]]:
        """Return ``{"shifts": [...], "blockedTimes": [...]}`` for a user."""
        return self._fetch(
            Resource.CALENDAR,
            user_id,
            f"/calendar/{user_id}",
            force_refresh=force_refresh,
        )
