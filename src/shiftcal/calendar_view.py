"""Monthly calendar view model.

The grid is always 6 weeks long, starting on the Sunday on or before
the first day of the displayed month. It is rebuilt from scratch from
the shift and blocked day lists every time the month changes or the
data is reloaded, without going back to the API for the month change.
All the shifts of a user are loaded at once, not month by month.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from . import get_timezone
from .date_utils import local_day

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable

    from .client import SchedulingClient

WEEKS_IN_GRID = 6
DAYS_IN_WEEK = 7
GRID_DAYS = WEEKS_IN_GRID * DAYS_IN_WEEK
MONTHS_IN_A_YEAR = 12


@dataclass
class CalendarDay:
    """One cell of the calendar grid."""

    date: date
    shifts: list[dict[str, Any]] = field(default_factory=list)
    blocked_times: list[dict[str, Any]] = field(default_factory=list)
    is_today: bool = False
    is_current_month: bool = False
    """The day belongs to the displayed month, not to the padding."""
    is_blocked: bool = False


def grid_start(year: int, month: int) -> date:
    """Return the Sunday on or before the first day of the month."""
    first_day = date(year, month, 1)
    # weekday() is 0 on Monday, 6 on Sunday
    return first_day - timedelta(days=(first_day.weekday() + 1) % DAYS_IN_WEEK)


def _by_day(records: Iterable[dict[str, Any]]) -> dict[date, list[dict[str, Any]]]:
    """Group active records by their local calendar day."""
    grouped: dict[date, list[dict[str, Any]]] = defaultdict(list)
    for record in records:
        if record.get("deleted"):
            continue
        grouped[local_day(record["date"])].append(record)
    return grouped


def build_grid(
    year: int,
    month: int,
    shifts: Iterable[dict[str, Any]],
    blocked_times: Iterable[dict[str, Any]],
    today: date | None = None,
) -> list[CalendarDay]:
    """Build the 42 days of the grid of a month."""
    if today is None:
        today = datetime.now(tz=get_timezone()).date()

    shifts_by_day = _by_day(shifts)
    blocked_by_day = _by_day(blocked_times)

    start = grid_start(year, month)
    days = []
    for offset in range(GRID_DAYS):
        day = start + timedelta(days=offset)
        day_shifts = sorted(
            shifts_by_day.get(day, []),
            key=lambda shift: shift.get("fromTime", ""),
        )
        day_blocked = blocked_by_day.get(day, [])
        days.append(
            CalendarDay(
                date=day,
                shifts=day_shifts,
                blocked_times=day_blocked,
                is_today=day == today,
                is_current_month=(day.year, day.month) == (year, month),
                is_blocked=bool(day_blocked),
            ),
        )
    return days


class CalendarView:
    """State behind the monthly calendar page of one user."""

    def __init__(
        self,
        client: SchedulingClient,
        user_id: str,
        today: date | None = None,
    ) -> None:
        """Show the current month, with no data until :meth:`load` is called.

        ``today`` pins the current date, otherwise the clock is used.
        """
        self.client = client
        self.user_id = user_id
        self._today = today
        self.year = self.today.year
        self.month = self.today.month
        self.shifts: list[dict[str, Any]] = []
        self.blocked_times: list[dict[str, Any]] = []
        self.days: list[CalendarDay] = []
        self.refresh()

    @property
    def today(self) -> date:
        """Current date in the app timezone."""
        if self._today is not None:
            return self._today
        return datetime.now(tz=get_timezone()).date()

    def load(self, *, force_refresh: bool = False) -> None:
        """Fetch the calendar data of the user and rebuild the grid.

        Errors from the client propagate and leave the view as it was.
        """
        data = self.client.get_calendar_data(self.user_id, force_refresh=force_refresh)
        self.shifts = [
            shift for shift in data.get("shifts") or [] if not shift.get("deleted")
        ]
        self.blocked_times = list(data.get("blockedTimes") or [])
        self.refresh()

    def refresh(self) -> None:
        """Rebuild the grid from the lists already loaded."""
        self.days = build_grid(
            self.year,
            self.month,
            self.shifts,
            self.blocked_times,
            today=self.today,
        )

    def previous_month(self) -> None:
        """Display the previous month."""
        if self.month == 1:
            self.year, self.month = self.year - 1, MONTHS_IN_A_YEAR
        else:
            self.month -= 1
        self.refresh()

    def next_month(self) -> None:
        """Display the next month."""
        if self.month == MONTHS_IN_A_YEAR:
            self.year, self.month = self.year + 1, 1
        else:
            self.month += 1
        self.refresh()

    def go_to_today(self) -> None:
        """Display the current month."""
        self.year, self.month = self.today.year, self.today.month
        self.refresh()

    @property
    def weeks(self) -> list[list[CalendarDay]]:
        """Return the grid as six weeks of seven days."""
        return [
            self.days[i : i + DAYS_IN_WEEK]
            for i in range(0, len(self.days), DAYS_IN_WEEK)
        ]

    @property
    def month_label(self) -> str:
        """Name of the displayed month, e.g. "March 2024"."""
        return date(self.year, self.month, 1).strftime("%B %Y")

    def is_date_blocked(self, day: date | datetime | str) -> bool:
        """Check whether the user has blocked the given day."""
        target = local_day(day)
        return any(
            local_day(blocked["date"]) == target
            for blocked in self.blocked_times
            if not blocked.get("deleted")
        )
