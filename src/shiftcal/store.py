"""Storage backends for the scheduling service.

The service only talks to the :class:`Store` interface. Two backends
exist and one of them is picked when the app starts:

- :class:`SQLStore`, persistent, backed by SQLAlchemy.
- :class:`MemoryStore`, ephemeral, for demos and tests. Data is lost
  when the process stops.
"""

from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import contextmanager
from logging import getLogger
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .date_utils import from_utc_naive, to_utc_naive
from .errors import DuplicateEmail, StoreError
from .models import Base, BlockedTime, Shift, User

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator
    from datetime import datetime

    from sqlalchemy.orm import scoped_session

    from .database import DB

logger = getLogger(__name__)

R = TypeVar("R", bound=Base)
D = TypeVar("D", bound=Union[Shift, BlockedTime])


class Store(ABC):
    """Interface of the document store used by the scheduling service."""

    backend: ClassVar[str]

    @abstractmethod
    def list_users(self) -> list[User]:
        """Return every user, oldest first."""

    @abstractmethod
    def find_user_by_email(self, email: str) -> User | None:
        """Return the user with the given email, if any."""

    @abstractmethod
    def add(self, record: R) -> R:
        """Persist a new record and return it with its identifier set."""

    @abstractmethod
    def get(self, model: type[R], record_id: str) -> R | None:
        """Return a record by id. Soft deleted records are returned too."""

    @abstractmethod
    def find(
        self,
        model: type[D],
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        include_deleted: bool = False,
    ) -> list[D]:
        """Return the records of a user, optionally within ``[start, end)``.

        Results are sorted by date.
        """

    @abstractmethod
    def save(self, record: R) -> R:
        """Persist the changes made to an existing record."""


class SQLStore(Store):
    """Store backed by a SQL database through SQLAlchemy."""

    backend = "sql"

    def __init__(self, db: DB) -> None:
        """Use the sessions of the given database."""
        self.db = db

    @property
    def session(self) -> scoped_session:
        """Session of the current request."""
        return self.db.session

    @contextmanager
    def _errors(self) -> Iterator[None]:
        """Roll back and translate database errors."""
        try:
            yield
        except IntegrityError as e:
            self.session.rollback()
            if "email" in str(e.orig).lower():
                raise DuplicateEmail from None
            logger.exception("Integrity error in the database.")
            raise StoreError(str(e.orig)) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception("Database error.")
            raise StoreError(str(e)) from e

    def list_users(self) -> list[User]:
        """Return every user, oldest first."""
        with self._errors():
            stmt = select(User).order_by(User.created_at, User.id)
            return list(self.session.scalars(stmt).all())

    def find_user_by_email(self, email: str) -> User | None:
        """Return the user with the given email, if any."""
        with self._errors():
            return self.session.scalars(
                select(User).where(User.email == email),
            ).first()

    def add(self, record: R) -> R:
        """Insert the record and commit."""
        with self._errors():
            self.session.add(record)
            self.session.commit()
        return record

    def get(self, model: type[R], record_id: str) -> R | None:
        """Return a record by primary key."""
        with self._errors():
            return self.session.get(model, record_id)

    def find(
        self,
        model: type[D],
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        include_deleted: bool = False,
    ) -> list[D]:
        """Query the records of a user with an optional date range."""
        stmt = select(model).where(model.user_id == user_id)
        if not include_deleted:
            stmt = stmt.where(model.deleted.is_(False))
        if start is not None:
            stmt = stmt.where(model.date >= to_utc_naive(start))
        if end is not None:
            stmt = stmt.where(model.date < to_utc_naive(end))
        stmt = stmt.order_by(model.date, model.id)
        with self._errors():
            return list(self.session.scalars(stmt).all())

    def save(self, record: R) -> R:
        """Commit the pending changes of the record."""
        with self._errors():
            self.session.add(record)
            self.session.commit()
        return record


class MemoryStore(Store):
    """In-process store. Nothing survives a restart.

    Every access to the record maps holds the store lock. Readers work on
    a copy of the values taken under the lock, so a request that lists
    records never iterates a map another request is adding to.
    """

    backend = "memory"

    def __init__(self) -> None:
        """Start empty."""
        self._records: dict[type, dict[str, Any]] = defaultdict(dict)
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def _snapshot(self, model: type) -> list[Any]:
        """Return the stored records of a model, in insertion order."""
        with self._lock:
            return list(self._records[model].values())

    def list_users(self) -> list[User]:
        """Return every user in insertion order."""
        return self._snapshot(User)

    def find_user_by_email(self, email: str) -> User | None:
        """Return the user with the given email, if any."""
        return next(
            (user for user in self.list_users() if user.email == email),
            None,
        )

    def add(self, record: R) -> R:
        """Assign an id, fill in defaults and keep the record."""
        stored: Any = record
        with self._lock:
            if isinstance(stored, User) and self.find_user_by_email(stored.email):
                raise DuplicateEmail
            if stored.id is None:
                stored.id = str(next(self._ids))
            if isinstance(stored, (Shift, BlockedTime)) and stored.deleted is None:
                stored.deleted = False
            self._records[type(stored)][stored.id] = stored
        return record

    def get(self, model: type[R], record_id: str) -> R | None:
        """Return a record by id."""
        with self._lock:
            return self._records[model].get(record_id)

    def find(
        self,
        model: type[D],
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        include_deleted: bool = False,
    ) -> list[D]:
        """Filter the records of a user with an optional date range."""
        found = []
        for record in self._snapshot(model):
            if record.user_id != user_id:
                continue
            if record.deleted and not include_deleted:
                continue
            when = from_utc_naive(record.date)
            if start is not None and when < start:
                continue
            if end is not None and when >= end:
                continue
            found.append(record)
        return sorted(found, key=lambda record: record.date)

    def save(self, record: R) -> R:
        """Changes are made in place, nothing to write."""
        stored: Any = record
        with self._lock:
            if stored.id not in self._records[type(stored)]:
                msg = f"{type(stored).__name__} {stored.id} is not stored."
                raise StoreError(msg)
        return record
