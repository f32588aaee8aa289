"""Catalog store: books and the copies each book owns."""

import logging
import sqlite3
from typing import Dict, List, Optional

from circulation.book import Book, BookCopy, CopyStatus
from circulation.database import Database
from utils import validators

logger = logging.getLogger(__name__)


class CatalogStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    def add_book(self, title: str, author: str, isbn: str, num_of_copies: int = 0) -> Book:
        """Create a book and ``num_of_copies`` available copies in one transaction."""
        title = validators.TextValidator.clean(title)
        author = validators.TextValidator.clean(author)
        isbn = validators.TextValidator.clean(isbn)
        count = validators.CopyCountValidator.normalize(num_of_copies)

        with self.db.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO books (title, author, isbn) VALUES (?, ?, ?)",
                (title, author, isbn),
            )
            book_id = cursor.lastrowid
            copies = []
            for _ in range(count):
                cursor = conn.execute(
                    "INSERT INTO book_copies (book_id, status) VALUES (?, ?)",
                    (book_id, CopyStatus.AVAILABLE.value),
                )
                copies.append(BookCopy(id=cursor.lastrowid, book_id=book_id))

        logger.info(f"Book {book_id} added with {count} copies: {title!r}")
        return Book(id=book_id, title=title, author=author, isbn=isbn, copies=copies)

    def list_books(self) -> List[Book]:
        """All books with their copies attached, oldest first."""
        with self.db.connection() as conn:
            book_rows = conn.execute("SELECT id, title, author, isbn FROM books ORDER BY id").fetchall()
            copies_by_book: Dict[int, List[BookCopy]] = {}
            for row in conn.execute("SELECT id, book_id, status FROM book_copies ORDER BY id"):
                copies_by_book.setdefault(row["book_id"], []).append(BookCopy.from_dict(dict(row)))
        return [
            Book.from_dict({**dict(row), "copies": copies_by_book.get(row["id"], [])})
            for row in book_rows
        ]

    def get_book(self, book_id: int) -> Optional[Book]:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT id, title, author, isbn FROM books WHERE id = ?", (book_id,)
            ).fetchone()
            if row is None:
                return None
            copies = self._copies_for_book(conn, book_id)
        return Book.from_dict({**dict(row), "copies": copies})

    def get_copy(self, copy_id: int) -> Optional[BookCopy]:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT id, book_id, status FROM book_copies WHERE id = ?", (copy_id,)
            ).fetchone()
        return BookCopy.from_dict(dict(row)) if row else None

    @staticmethod
    def _copies_for_book(conn: sqlite3.Connection, book_id: int) -> List[BookCopy]:
        rows = conn.execute(
            "SELECT id, book_id, status FROM book_copies WHERE book_id = ? ORDER BY id", (book_id,)
        ).fetchall()
        return [BookCopy.from_dict(dict(r)) for r in rows]

    # ------------------- Copy state transitions ------------------- #
    # These run on the caller's transaction connection.

    @staticmethod
    def claim_available_copy(conn: sqlite3.Connection, book_id: int) -> Optional[int]:
        """Flip the lowest-id available copy of a book to checked_out.

        Returns the claimed copy id, or None when every copy is out.  The
        status guard in the UPDATE makes the find-and-flip a single step.
        """
        row = conn.execute(
            "SELECT id FROM book_copies WHERE book_id = ? AND status = ? ORDER BY id LIMIT 1",
            (book_id, CopyStatus.AVAILABLE.value),
        ).fetchone()
        if row is None:
            return None
        cursor = conn.execute(
            "UPDATE book_copies SET status = ? WHERE id = ? AND status = ?",
            (CopyStatus.CHECKED_OUT.value, row["id"], CopyStatus.AVAILABLE.value),
        )
        if cursor.rowcount != 1:
            return None
        return row["id"]

    @staticmethod
    def set_copy_status(conn: sqlite3.Connection, copy_id: int, status: CopyStatus) -> BookCopy:
        conn.execute("UPDATE book_copies SET status = ? WHERE id = ?", (status.value, copy_id))
        row = conn.execute(
            "SELECT id, book_id, status FROM book_copies WHERE id = ?", (copy_id,)
        ).fetchone()
        return BookCopy.from_dict(dict(row))

    def count_copies(self) -> Dict[str, int]:
        with self.db.connection() as conn:
            total = conn.execute("SELECT COUNT(*) FROM book_copies").fetchone()[0]
            available = conn.execute(
                "SELECT COUNT(*) FROM book_copies WHERE status = ?", (CopyStatus.AVAILABLE.value,)
            ).fetchone()[0]
            books = conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]
        return {"total_books": books, "total_copies": total, "available_copies": available}
