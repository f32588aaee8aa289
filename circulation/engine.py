"""Checkout engine: the state machine behind checkout, return and queue hand-off.

A copy is ``available`` or ``checked_out``.  Checking out claims an
available copy and opens a Checkout in the same transaction.  Returning
closes the Checkout, frees the copy, computes the late fine and, when the
book has a waiting reservation, immediately lends the copy to the earliest
reservee.  Both operations run inside ``Database.transaction()``, so no
other writer can observe or claim the copy in between.
"""

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import List, Optional

from circulation.book import CopyStatus
from circulation.catalog import CatalogStore
from circulation.database import Database
from circulation.errors import AlreadyReturnedError, ForbiddenError, NotFoundError, UnavailableError
from circulation.loans import Checkout, ReturnResult, as_utc, format_timestamp, utcnow
from circulation.membership import MembershipStore
from circulation.reservations import ReservationQueue
from config import settings

logger = logging.getLogger(__name__)

_COLUMNS = "id, user_id, book_copy_id, due_date, returned"


class CheckoutEngine:
    def __init__(
        self,
        db: Database,
        members: MembershipStore,
        loan_period_days: Optional[int] = None,
        fine_per_day: Optional[int] = None,
    ) -> None:
        self.db = db
        self.members = members
        self.loan_period = timedelta(
            days=settings.loan_period_days if loan_period_days is None else loan_period_days
        )
        self.fine_per_day = settings.fine_per_day if fine_per_day is None else fine_per_day

    # ------------------------- Checkout ------------------------- #
    def checkout(self, user_id: int, book_id: int, now: Optional[datetime] = None) -> Checkout:
        """Lend any available copy of ``book_id`` to a student."""
        now = as_utc(now) if now else utcnow()
        user = self.members.get_user(user_id)
        if user is None:
            logger.warning(f"Checkout rejected: user {user_id} not found")
            raise NotFoundError("User not found")
        if not user.can_checkout():
            logger.warning(f"Checkout rejected: user {user_id} is a {user.role.value}")
            raise ForbiddenError("Only students can checkout")

        with self.db.transaction() as conn:
            copy_id = CatalogStore.claim_available_copy(conn, book_id)
            if copy_id is None:
                logger.warning(f"Checkout rejected: no available copy of book {book_id}")
                raise UnavailableError("No copies available. You may reserve.")
            checkout = self._open_checkout(conn, user.id, copy_id, now)

        logger.info(f"Checkout {checkout.id}: copy {copy_id} of book {book_id} lent to user {user.id}")
        return checkout

    # ------------------------- Return ------------------------- #
    def return_checkout(self, checkout_id: int, now: Optional[datetime] = None) -> ReturnResult:
        """Close a checkout, compute its fine and serve the book's waitlist."""
        now = as_utc(now) if now else utcnow()
        with self.db.transaction() as conn:
            row = conn.execute(f"SELECT {_COLUMNS} FROM checkouts WHERE id = ?", (checkout_id,)).fetchone()
            if row is None:
                raise NotFoundError("Checkout not found")
            checkout = Checkout.from_row(row)
            if checkout.returned:
                logger.warning(f"Return rejected: checkout {checkout_id} already returned")
                raise AlreadyReturnedError("Already returned")

            cursor = conn.execute(
                "UPDATE checkouts SET returned = 1 WHERE id = ? AND returned = 0", (checkout_id,)
            )
            if cursor.rowcount != 1:
                raise AlreadyReturnedError("Already returned")
            checkout.returned = True

            copy = CatalogStore.set_copy_status(conn, checkout.book_copy_id, CopyStatus.AVAILABLE)
            result = ReturnResult(checkout=checkout, fine=self.compute_fine(checkout.due_date, now))

            reservation = ReservationQueue.next_active(conn, copy.book_id)
            if reservation is not None and ReservationQueue.fulfil(conn, reservation):
                CatalogStore.set_copy_status(conn, copy.id, CopyStatus.CHECKED_OUT)
                result.next_checkout = self._open_checkout(conn, reservation.user_id, copy.id, now)
                result.fulfilled_reservation = reservation

        logger.info(f"Checkout {checkout_id} returned, fine {result.fine}")
        if result.next_checkout is not None:
            logger.info(
                f"Reservation {result.fulfilled_reservation.id} fulfilled: copy {copy.id} "
                f"lent to user {result.next_checkout.user_id} as checkout {result.next_checkout.id}"
            )
        return result

    def compute_fine(self, due_date: datetime, now: datetime) -> int:
        """Flat per-day fine for every full 24 hours past the due date."""
        if now <= due_date:
            return 0
        days_late = (now - due_date) // timedelta(days=1)
        return days_late * self.fine_per_day

    # ------------------------- Queries ------------------------- #
    def get_checkout(self, checkout_id: int) -> Optional[Checkout]:
        with self.db.connection() as conn:
            row = conn.execute(f"SELECT {_COLUMNS} FROM checkouts WHERE id = ?", (checkout_id,)).fetchone()
        return Checkout.from_row(row) if row else None

    def list_checkouts(self) -> List[Checkout]:
        with self.db.connection() as conn:
            rows = conn.execute(f"SELECT {_COLUMNS} FROM checkouts ORDER BY id").fetchall()
        return [Checkout.from_row(r) for r in rows]

    def open_checkouts_for_copy(self, copy_id: int) -> List[Checkout]:
        with self.db.connection() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM checkouts WHERE book_copy_id = ? AND returned = 0 ORDER BY id",
                (copy_id,),
            ).fetchall()
        return [Checkout.from_row(r) for r in rows]

    def count_open(self) -> int:
        with self.db.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM checkouts WHERE returned = 0").fetchone()[0]

    def _open_checkout(self, conn: sqlite3.Connection, user_id: int, copy_id: int, now: datetime) -> Checkout:
        due_date = now + self.loan_period
        cursor = conn.execute(
            "INSERT INTO checkouts (user_id, book_copy_id, due_date, returned) VALUES (?, ?, ?, 0)",
            (user_id, copy_id, format_timestamp(due_date)),
        )
        return Checkout(id=cursor.lastrowid, user_id=user_id, book_copy_id=copy_id, due_date=due_date)
