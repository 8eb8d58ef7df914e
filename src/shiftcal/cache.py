"""Client side cache of API resources.

The cache exists to avoid fetching the same lists again while the user
moves around the calendar, not to save memory or bandwidth. Entries
never expire and there is no size bound: every write path must
invalidate what it makes stale.
"""

from __future__ import annotations

from enum import Enum
from logging import getLogger
from typing import Any, Optional

logger = getLogger(__name__)


class Resource(str, Enum):
    """Cached resource types."""

    USERS = "users"
    SHIFTS = "shifts"
    BLOCKED_TIMES = "blocked"
    CALENDAR = "calendar"


CacheKey = tuple[Resource, Optional[str]]


class ResourceCache:
    """Mapping of ``(resource, user id)`` to the last fetched value.

    The users list is global and is stored with a ``None`` user id.
    """

    def __init__(self) -> None:
        """Start empty."""
        self._entries: dict[CacheKey, Any] = {}

    def contains(self, resource: Resource, user_id: str | None = None) -> bool:
        """Check whether there is a cached value."""
        return (resource, user_id) in self._entries

    def get(self, resource: Resource, user_id: str | None = None) -> Any:  # noqa: ANN401
        """Return the cached value. Raises KeyError if there is none."""
        return self._entries[(resource, user_id)]

    def put(self, resource: Resource, user_id: str | None, value: Any) -> None:  # noqa: ANN401
        """Store a freshly fetched value."""
        self._entries[(resource, user_id)] = value

    def invalidate(self, resource: Resource, user_id: str | None = None) -> None:
        """Forget a cached value, if any."""
        if self._entries.pop((resource, user_id), None) is not None:
            logger.debug("Cache entry %s/%s invalidated", resource.value, user_id)

    def invalidate_for_write(self, resource: Resource, user_id: str | None) -> None:
        """Forget everything a write to ``resource`` makes stale.

        The calendar snapshot of a user aggregates shifts and blocked
        days, so it goes together with either of them.
        """
        self.invalidate(resource, user_id)
        if resource in (Resource.SHIFTS, Resource.BLOCKED_TIMES):
            self.invalidate(Resource.CALENDAR, user_id)

    def clear(self) -> None:
        """Forget everything."""
        self._entries.clear()
