"""Database models for the application."""

from __future__ import annotations

from datetime import date, datetime  # noqa: TCH003. Needed by the mapping.
from typing import Any
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.orm.decl_api import DeclarativeBase
from sqlalchemy.schema import MetaData

from . import get_timezone
from .date_utils import UTC, from_utc_naive, isoformat

# Naming conventions for migrations
naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=naming_convention)


def new_id() -> str:
    """Return a new opaque identifier."""
    return uuid4().hex


def utcnow() -> datetime:
    """Return the current time as naive UTC."""
    return datetime.now(tz=UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for declarative models."""

    metadata = metadata


class User(Base):
    """Owner of shifts and blocked days."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
    )
    """Naive UTC. Only used to list users in creation order."""

    def to_dict(self) -> dict[str, Any]:
        """Return the API representation of the user."""
        return {"_id": self.id, "name": self.name, "email": self.email}

    def __repr__(self) -> str:
        """Represent the user by email."""
        return f"<User {self.email}>"


class _DatedRecord:
    """Helpers shared by the records that live on a calendar day."""

    @property
    def date_utc(self) -> datetime:
        """Date of the record as an aware UTC datetime."""
        return from_utc_naive(self.date)

    @property
    def local_date(self) -> date:
        """Calendar day of the record in the app timezone."""
        return self.date_utc.astimezone(get_timezone()).date()


class Shift(_DatedRecord, Base):
    """A work interval on a given day.

    ``deleted`` is a soft delete flag. Deleted shifts are kept in the
    database but hidden from every listing.
    """

    __tablename__ = "shifts"
    __table_args__ = (Index("idx_shifts_user_date", "user_id", "date"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("users.id"),
        nullable=False,
    )
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    from_time: Mapped[str] = mapped_column(String(5), nullable=False)
    """Start time of day, HH:MM."""
    to_time: Mapped[str] = mapped_column(String(5), nullable=False)
    """End time of day, HH:MM."""
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        """Return the API representation of the shift."""
        return {
            "_id": self.id,
            "userId": self.user_id,
            "date": isoformat(self.date),
            "fromTime": self.from_time,
            "toTime": self.to_time,
            "deleted": bool(self.deleted),
        }

    def __repr__(self) -> str:
        """Represent the shift by day and times."""
        return f"<Shift {self.local_date} {self.from_time}-{self.to_time}>"


class BlockedTime(_DatedRecord, Base):
    """A day during which the user is not available."""

    __tablename__ = "blocked_times"
    __table_args__ = (Index("idx_blocked_times_user_date", "user_id", "date"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("users.id"),
        nullable=False,
    )
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        """Return the API representation of the blocked day."""
        return {
            "_id": self.id,
            "userId": self.user_id,
            "date": isoformat(self.date),
            "reason": self.reason,
            "deleted": bool(self.deleted),
        }

    def __repr__(self) -> str:
        """Represent the blocked day."""
        return f"<BlockedTime {self.local_date}>"
