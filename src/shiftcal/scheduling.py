"""Business logic: shifts, blocked days and the rule that keeps them apart.

A user cannot have an active shift and an active blocked day on the
same calendar day. Both records are soft deleted, so "active" means
``deleted`` is false. Days are compared with the day window of the app
timezone (see :mod:`shiftcal.date_utils`).
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from logging import getLogger
from typing import TYPE_CHECKING, Any

from . import get_timezone
from .date_utils import (
    day_window,
    local_day,
    parse_date,
    parse_time_of_day,
    to_utc_naive,
)
from .errors import (
    AlreadyBlocked,
    BlockedDay,
    DuplicateEmail,
    NotFound,
    ShiftsExist,
    ValidationError,
)
from .models import BlockedTime, Shift, User

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator

    from .store import Store

logger = getLogger(__name__)

DEFAULT_USER_NAME = "Demo User"
DEFAULT_USER_EMAIL = "demo@example.com"

DAYS_IN_WORK_WEEK = 5

MSG_SHIFT_ON_BLOCKED_DAY = (
    "Cannot add shift to a blocked day. Please unblock the day first."
)
MSG_SHIFT_MOVED_TO_BLOCKED_DAY = (
    "Cannot update shift to a blocked day. Please unblock the day first."
)


@dataclass
class CalendarSnapshot:
    """Active shifts and blocked days of a user, fetched together."""

    shifts: list[Shift]
    blocked_times: list[BlockedTime]

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        """Return the API representation."""
        return {
            "shifts": [shift.to_dict() for shift in self.shifts],
            "blockedTimes": [blocked.to_dict() for blocked in self.blocked_times],
        }


@dataclass
class WeekResult:
    """Outcome of adding the same shift to a whole work week."""

    created: list[Shift] = field(default_factory=list)
    skipped: list[date] = field(default_factory=list)
    """Days that were blocked and got no shift."""

    def to_dict(self) -> dict[str, Any]:
        """Return the API representation."""
        return {
            "created": [shift.to_dict() for shift in self.created],
            "skipped": [day.isoformat() for day in self.skipped],
        }


class _DayLocks:
    """One lock per (user, calendar day), held only while in use.

    The invariant checks read the store and then write to it. Holding
    the lock of the day across both steps keeps two requests for the
    same user and day from interleaving within this process. A lock is
    dropped once no request holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, date], tuple[threading.Lock, int]] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def __call__(self, user_id: str, when: datetime) -> Iterator[None]:
        key = (user_id, local_day(when))
        with self._guard:
            lock, users = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[key]
                if users == 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)


def _required(value: Any, name: str) -> Any:  # noqa: ANN401
    """Reject missing and blank values."""
    if value is None or (isinstance(value, str) and not value.strip()):
        msg = f"{name} is required"
        raise ValidationError(msg)
    return value


class SchedulingService:
    """Single source of truth for shifts and blocked days.

    Every operation goes through the injected :class:`~shiftcal.store.Store`,
    so the same rules apply to the SQL and the in-memory backends.
    """

    def __init__(self, store: Store) -> None:
        """Use the given store for every read and write."""
        self.store = store
        self._day_lock = _DayLocks()

    # Users

    def list_users(self) -> list[User]:
        """Return every user."""
        return self.store.list_users()

    def create_user(self, name: str, email: str) -> User:
        """Create a user. The email must be unique."""
        name = str(_required(name, "name")).strip()
        email = str(_required(email, "email")).strip()
        if "@" not in email:
            msg = f"Invalid email: {email}"
            raise ValidationError(msg)
        if self.store.find_user_by_email(email):
            raise DuplicateEmail

        user = self.store.add(User(name=name, email=email))
        logger.info("User created. email=%s", email)
        return user

    def ensure_default_user(
        self,
        name: str = DEFAULT_USER_NAME,
        email: str = DEFAULT_USER_EMAIL,
    ) -> User:
        """Return the first user, creating a default one if there are none."""
        users = self.store.list_users()
        if users:
            return users[0]
        logger.info("No users in the store. Creating the default user.")
        return self.create_user(name, email)

    def _check_user(self, user_id: Any) -> str:  # noqa: ANN401
        """Return the user id if it names an existing user."""
        user_id = str(_required(user_id, "userId")).strip()
        if self.store.get(User, user_id) is None:
            msg = f"Unknown user: {user_id}"
            raise ValidationError(msg)
        return user_id

    # Shifts

    def _ensure_not_blocked(self, user_id: str, when: datetime, message: str) -> None:
        start, end = day_window(when)
        if self.store.find(BlockedTime, user_id, start, end):
            logger.warning(
                "Shift rejected, day is blocked. user=%s day=%s",
                user_id,
                local_day(when),
            )
            raise BlockedDay(message)

    def create_shift(
        self,
        user_id: str,
        date: Any,  # noqa: ANN401
        from_time: str,
        to_time: str,
    ) -> Shift:
        """Create a shift unless the day is blocked."""
        user_id = self._check_user(user_id)
        when = parse_date(_required(date, "date"))
        from_time = parse_time_of_day(_required(from_time, "fromTime"), "fromTime")
        to_time = parse_time_of_day(_required(to_time, "toTime"), "toTime")

        with self._day_lock(user_id, when):
            self._ensure_not_blocked(user_id, when, MSG_SHIFT_ON_BLOCKED_DAY)
            shift = self.store.add(
                Shift(
                    user_id=user_id,
                    date=to_utc_naive(when),
                    from_time=from_time,
                    to_time=to_time,
                    deleted=False,
                ),
            )

        logger.info(
            "Shift created. user=%s day=%s %s-%s",
            user_id,
            local_day(when),
            from_time,
            to_time,
        )
        return shift

    def get_shift(self, shift_id: str) -> Shift:
        """Return a shift by id, even if it was soft deleted."""
        shift = self.store.get(Shift, shift_id)
        if shift is None:
            msg = "Shift not found"
            raise NotFound(msg)
        return shift

    def update_shift(  # noqa: PLR0913
        self,
        shift_id: str,
        user_id: str | None = None,
        date: Any = None,  # noqa: ANN401
        from_time: str | None = None,
        to_time: str | None = None,
        *,
        deleted: bool | None = None,
    ) -> Shift:
        """Change the day or times of a shift.

        The blocked day check runs again against the resulting day.
        ``user_id``, when given, must own the shift. Passing
        ``deleted=True`` then soft deletes the shift and ignores the
        day and times.
        """
        shift = self.get_shift(shift_id)
        if user_id is not None and str(user_id) != shift.user_id:
            msg = "Shift belongs to another user"
            raise ValidationError(msg)

        if deleted:
            return self.soft_delete_shift(shift_id)
        if shift.deleted:
            msg = "Shift not found"
            raise NotFound(msg)

        when = parse_date(date) if date is not None else shift.date_utc
        if from_time is not None:
            from_time = parse_time_of_day(from_time, "fromTime")
        if to_time is not None:
            to_time = parse_time_of_day(to_time, "toTime")

        with self._day_lock(shift.user_id, when):
            self._ensure_not_blocked(
                shift.user_id,
                when,
                MSG_SHIFT_MOVED_TO_BLOCKED_DAY,
            )
            shift.date = to_utc_naive(when)
            if from_time is not None:
                shift.from_time = from_time
            if to_time is not None:
                shift.to_time = to_time
            self.store.save(shift)

        logger.info("Shift %s updated. day=%s", shift_id, local_day(when))
        return shift

    def soft_delete_shift(self, shift_id: str) -> Shift:
        """Flag a shift as deleted. Deleting it again changes nothing."""
        shift = self.get_shift(shift_id)
        if not shift.deleted:
            shift.deleted = True
            self.store.save(shift)
            logger.info("Shift %s soft deleted.", shift_id)
        return shift

    def list_shifts(self, user_id: str) -> list[Shift]:
        """Return the active shifts of a user."""
        return self.store.find(Shift, user_id)

    def create_week_shifts(
        self,
        user_id: str,
        date: Any,  # noqa: ANN401
        from_time: str,
        to_time: str,
    ) -> WeekResult:
        """Add the same shift from Monday to Friday of the week of ``date``.

        Blocked days are skipped and reported, they do not abort the rest
        of the week.
        """
        day = local_day(_required(date, "date"))
        monday = day - timedelta(days=day.weekday())
        tz = get_timezone()

        result = WeekResult()
        for offset in range(DAYS_IN_WORK_WEEK):
            weekday = monday + timedelta(days=offset)
            when = tz.localize(datetime.combine(weekday, time.min))
            try:
                result.created.append(
                    self.create_shift(user_id, when, from_time, to_time),
                )
            except BlockedDay:
                result.skipped.append(weekday)
        return result

    # Blocked days

    def create_blocked_time(
        self,
        user_id: str,
        date: Any,  # noqa: ANN401
        reason: str | None = None,
    ) -> BlockedTime:
        """Block a day. It must not be blocked already nor have shifts."""
        user_id = self._check_user(user_id)
        when = parse_date(_required(date, "date"))
        if reason is not None and not isinstance(reason, str):
            msg = "reason must be text"
            raise ValidationError(msg)

        start, end = day_window(when)
        with self._day_lock(user_id, when):
            if self.store.find(BlockedTime, user_id, start, end):
                logger.warning(
                    "Block rejected, already blocked. user=%s day=%s",
                    user_id,
                    local_day(when),
                )
                raise AlreadyBlocked
            if self.store.find(Shift, user_id, start, end):
                logger.warning(
                    "Block rejected, shifts exist. user=%s day=%s",
                    user_id,
                    local_day(when),
                )
                raise ShiftsExist
            blocked = self.store.add(
                BlockedTime(
                    user_id=user_id,
                    date=to_utc_naive(when),
                    reason=reason,
                    deleted=False,
                ),
            )

        logger.info("Day blocked. user=%s day=%s", user_id, local_day(when))
        return blocked

    def get_blocked_time(self, blocked_time_id: str) -> BlockedTime:
        """Return a blocked day by id, even if it was soft deleted."""
        blocked = self.store.get(BlockedTime, blocked_time_id)
        if blocked is None:
            msg = "Blocked time not found"
            raise NotFound(msg)
        return blocked

    def soft_delete_blocked_time(self, blocked_time_id: str) -> BlockedTime:
        """Flag a blocked day as deleted, which unblocks the day."""
        blocked = self.get_blocked_time(blocked_time_id)
        if not blocked.deleted:
            blocked.deleted = True
            self.store.save(blocked)
            logger.info("Blocked time %s soft deleted.", blocked_time_id)
        return blocked

    def list_blocked_times(self, user_id: str) -> list[BlockedTime]:
        """Return the active blocked days of a user."""
        return self.store.find(BlockedTime, user_id)

    def get_calendar_snapshot(self, user_id: str) -> CalendarSnapshot:
        """Return shifts and blocked days of a user in one go."""
        return CalendarSnapshot(
            shifts=self.list_shifts(user_id),
            blocked_times=self.list_blocked_times(user_id),
        )
