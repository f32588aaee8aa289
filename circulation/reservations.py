"""Reservation queue: a per-book FIFO waitlist.

Reservations are never deleted.  Serving one flips ``active`` to false, so
the table doubles as the reservation history.
"""

import logging
import sqlite3
from datetime import datetime
from typing import List, Optional

from circulation.database import Database
from circulation.loans import Reservation, as_utc, format_timestamp, utcnow

logger = logging.getLogger(__name__)

_COLUMNS = "id, user_id, book_id, created_at, active"


class ReservationQueue:
    def __init__(self, db: Database) -> None:
        self.db = db

    def reserve(self, user_id: int, book_id: int, now: Optional[datetime] = None) -> Reservation:
        """Join the waitlist for a book.

        Neither the user nor the book is checked, and a user may queue for
        the same book more than once.
        """
        now = as_utc(now) if now else utcnow()
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO reservations (user_id, book_id, created_at, active) VALUES (?, ?, ?, 1)",
                (user_id, book_id, format_timestamp(now)),
            )
            reservation = Reservation(
                id=cursor.lastrowid, user_id=user_id, book_id=book_id, created_at=now, active=True
            )
        logger.info(f"Reservation {reservation.id}: user {user_id} queued for book {book_id}")
        return reservation

    @staticmethod
    def next_active(conn: sqlite3.Connection, book_id: int) -> Optional[Reservation]:
        """Earliest active reservation for a book, ties broken by id."""
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM reservations WHERE book_id = ? AND active = 1 "
            "ORDER BY created_at ASC, id ASC LIMIT 1",
            (book_id,),
        ).fetchone()
        return Reservation.from_row(row) if row else None

    @staticmethod
    def fulfil(conn: sqlite3.Connection, reservation: Reservation) -> bool:
        """Mark a reservation served; False if someone else served it first."""
        cursor = conn.execute(
            "UPDATE reservations SET active = 0 WHERE id = ? AND active = 1", (reservation.id,)
        )
        if cursor.rowcount != 1:
            return False
        reservation.active = False
        return True

    def peek(self, book_id: int) -> Optional[Reservation]:
        with self.db.connection() as conn:
            return self.next_active(conn, book_id)

    def list_reservations(self, book_id: Optional[int] = None, active_only: bool = False) -> List[Reservation]:
        query = f"SELECT {_COLUMNS} FROM reservations"
        clauses, params = [], []
        if book_id is not None:
            clauses.append("book_id = ?")
            params.append(book_id)
        if active_only:
            clauses.append("active = 1")
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at ASC, id ASC"
        with self.db.connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [Reservation.from_row(r) for r in rows]

    def count_active(self) -> int:
        with self.db.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM reservations WHERE active = 1").fetchone()[0]
