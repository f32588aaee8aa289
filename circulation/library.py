from datetime import datetime
from typing import Any, Dict, List, Optional

from circulation.book import Book, BookCopy
from circulation.catalog import CatalogStore
from circulation.database import Database
from circulation.engine import CheckoutEngine
from circulation.loans import Checkout, Reservation, ReturnResult
from circulation.membership import MembershipStore
from circulation.reservations import ReservationQueue
from circulation.user import User


class Library:
    """Manages the catalog, the members and circulation over one database."""

    def __init__(
        self,
        db_file: Optional[str] = None,
        db: Optional[Database] = None,
        loan_period_days: Optional[int] = None,
        fine_per_day: Optional[int] = None,
    ) -> None:
        self.db = db or Database(db_file)
        # Make sure the schema is current on every start
        self.db.initialize()

        self.catalog = CatalogStore(self.db)
        self.members = MembershipStore(self.db)
        self.reservations = ReservationQueue(self.db)
        self.engine = CheckoutEngine(
            self.db,
            self.members,
            loan_period_days=loan_period_days,
            fine_per_day=fine_per_day,
        )

    # ------------------------- Catalog ------------------------- #
    def add_book(self, title: str, author: str, isbn: str, num_of_copies: int = 0) -> Book:
        return self.catalog.add_book(title, author, isbn, num_of_copies)

    def list_books(self) -> List[Book]:
        return self.catalog.list_books()

    def find_book(self, book_id: int) -> Optional[Book]:
        return self.catalog.get_book(book_id)

    def find_copy(self, copy_id: int) -> Optional[BookCopy]:
        return self.catalog.get_copy(copy_id)

    # ------------------------- Membership ------------------------- #
    def register_user(self, name: str, role: str) -> User:
        return self.members.register_user(name, role)

    def list_users(self) -> List[User]:
        return self.members.list_users()

    def find_user(self, user_id: int) -> Optional[User]:
        return self.members.get_user(user_id)

    # ------------------------- Circulation ------------------------- #
    def checkout(self, user_id: int, book_id: int, now: Optional[datetime] = None) -> Checkout:
        return self.engine.checkout(user_id, book_id, now=now)

    def return_checkout(self, checkout_id: int, now: Optional[datetime] = None) -> ReturnResult:
        return self.engine.return_checkout(checkout_id, now=now)

    def reserve(self, user_id: int, book_id: int, now: Optional[datetime] = None) -> Reservation:
        return self.reservations.reserve(user_id, book_id, now=now)

    def list_checkouts(self) -> List[Checkout]:
        return self.engine.list_checkouts()

    def find_checkout(self, checkout_id: int) -> Optional[Checkout]:
        return self.engine.get_checkout(checkout_id)

    def list_reservations(self, book_id: Optional[int] = None, active_only: bool = False) -> List[Reservation]:
        return self.reservations.list_reservations(book_id=book_id, active_only=active_only)

    # ------------------------- Reporting ------------------------- #
    def get_statistics(self) -> Dict[str, Any]:
        """Collection and circulation counters."""
        stats: Dict[str, Any] = dict(self.catalog.count_copies())
        stats["total_users"] = self.members.count_users()
        stats["open_checkouts"] = self.engine.count_open()
        stats["active_reservations"] = self.reservations.count_active()
        return stats

    def close(self) -> None:
        """Connections are opened per operation, so there is nothing to release."""
        return None
