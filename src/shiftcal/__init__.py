"""Shift scheduling with blocked days.

Calendar days are days of a single app timezone. Every module asks
:func:`get_timezone` for it instead of reading the environment, so the
zone only changes through :func:`configure_timezone`.
"""

from __future__ import annotations

import os
from logging import getLogger
from typing import TYPE_CHECKING

import pytz

if TYPE_CHECKING:  # pragma: no cover
    from pytz.tzinfo import BaseTzInfo

logger = getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Madrid"

_app_zone: BaseTzInfo = pytz.timezone(DEFAULT_TIMEZONE)


def get_timezone() -> BaseTzInfo:
    """Return the zone whose midnights split the calendar into days."""
    return _app_zone


def configure_timezone(name: str | None = None) -> BaseTzInfo:
    """Set the app timezone and return it.

    An explicit ``name`` must be a known zone. Without one the ``TZ``
    environment variable is used; an unknown value there is logged and
    the default zone is used instead.
    """
    global _app_zone  # noqa: PLW0603
    if name:
        _app_zone = pytz.timezone(name)
    else:
        env_name = os.getenv("TZ") or DEFAULT_TIMEZONE
        try:
            _app_zone = pytz.timezone(env_name)
        except pytz.UnknownTimeZoneError:
            logger.warning("Unknown TZ %r, using %s", env_name, DEFAULT_TIMEZONE)
            _app_zone = pytz.timezone(DEFAULT_TIMEZONE)
    return _app_zone
