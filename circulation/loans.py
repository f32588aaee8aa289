"""Checkout and Reservation records plus the timestamp helpers they share.

Timestamps are timezone-aware UTC datetimes.  In SQLite they are stored as
ISO-8601 strings with a fixed microsecond precision, so ordering the text
column orders the instants.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return as_utc(value).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    return as_utc(datetime.fromisoformat(value))


@dataclass
class Checkout:
    """A copy lent to a user until due_date."""

    id: int
    user_id: int
    book_copy_id: int
    due_date: datetime
    returned: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_copy_id": self.book_copy_id,
            "due_date": self.due_date.isoformat(),
            "returned": self.returned,
        }

    @staticmethod
    def from_row(row) -> "Checkout":
        return Checkout(
            id=row["id"],
            user_id=row["user_id"],
            book_copy_id=row["book_copy_id"],
            due_date=parse_timestamp(row["due_date"]),
            returned=bool(row["returned"]),
        )


@dataclass
class Reservation:
    """A waitlist entry for the next free copy of a book."""

    id: int
    user_id: int
    book_id: int
    created_at: datetime
    active: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "created_at": self.created_at.isoformat(),
            "active": self.active,
        }

    @staticmethod
    def from_row(row) -> "Reservation":
        return Reservation(
            id=row["id"],
            user_id=row["user_id"],
            book_id=row["book_id"],
            created_at=parse_timestamp(row["created_at"]),
            active=bool(row["active"]),
        )


@dataclass
class ReturnResult:
    """Outcome of a return: the closed checkout, the fine, and any queue hand-off."""

    checkout: Checkout
    fine: int = 0
    fulfilled_reservation: Optional[Reservation] = None
    next_checkout: Optional[Checkout] = None
