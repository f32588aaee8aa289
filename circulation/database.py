"""SQLite persistence context.

A ``Database`` is constructed once per process (or per test) and handed to
every store, so there is no module-level connection state.  Reads open a
short-lived connection; writes go through ``transaction()``, which
serializes writers in-process with a lock and across processes with
``BEGIN IMMEDIATE``.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from config import settings

logger = logging.getLogger(__name__)


class Database:
    """Owns the database file path, the schema and write serialization."""

    def __init__(self, db_file: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.db_file = db_file or settings.database_file
        self.timeout = settings.database_timeout if timeout is None else timeout
        self._write_lock = threading.RLock()

    def connect(self) -> sqlite3.Connection:
        """Open a new connection in autocommit mode; transactions are explicit."""
        conn = sqlite3.connect(
            self.db_file,
            timeout=self.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block as one write transaction, rolling back on any error."""
        with self._write_lock:
            conn = self.connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            finally:
                conn.close()

    # ------------------------- Schema ------------------------- #
    def create_tables(self) -> None:
        """Create the tables if they do not exist yet."""
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    author TEXT NOT NULL,
                    isbn TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS book_copies (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    book_id INTEGER NOT NULL,
                    status TEXT NOT NULL DEFAULT 'available'
                        CHECK(status IN ('available', 'checked_out')),
                    FOREIGN KEY (book_id) REFERENCES books(id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    role TEXT NOT NULL CHECK(role IN ('student', 'librarian'))
                )
            """)

            # user_id carries no foreign key: a reservation (and so the
            # checkout created when it is served) never verifies the user.
            conn.execute("""
                CREATE TABLE IF NOT EXISTS checkouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    book_copy_id INTEGER NOT NULL,
                    due_date TEXT NOT NULL,
                    returned INTEGER NOT NULL DEFAULT 0 CHECK(returned IN (0, 1)),
                    FOREIGN KEY (book_copy_id) REFERENCES book_copies(id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS reservations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    book_id INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    active INTEGER NOT NULL DEFAULT 1 CHECK(active IN (0, 1))
                )
            """)

            # Add columns introduced after the first release
            columns = self._columns(conn, "books")
            if "created_at" not in columns:
                # SQLite refuses ALTER TABLE ADD COLUMN with a non-constant default,
                # so add it bare and backfill.
                conn.execute("ALTER TABLE books ADD COLUMN created_at TIMESTAMP")
                conn.execute("UPDATE books SET created_at = CURRENT_TIMESTAMP WHERE created_at IS NULL")

            conn.execute("CREATE INDEX IF NOT EXISTS idx_book_copies_book_status ON book_copies(book_id, status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_checkouts_copy ON checkouts(book_copy_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_checkouts_user ON checkouts(user_id)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_reservations_queue ON reservations(book_id, active, created_at)"
            )

    @staticmethod
    def _columns(conn: sqlite3.Connection, table: str) -> list[str]:
        return [column[1] for column in conn.execute(f"PRAGMA table_info({table})").fetchall()]

    def initialize(self) -> None:
        """Prepare the database file: journal mode and schema."""
        with self.connection() as conn:
            # WAL lets readers proceed while a writer holds the lock
            conn.execute("PRAGMA journal_mode=WAL;")
        self.create_tables()
        logger.info(f"Database ready at {self.db_file}")

    def ping(self) -> bool:
        try:
            with self.connection() as conn:
                conn.execute("SELECT 1")
            return True
        except sqlite3.Error as e:
            logger.error(f"Database health check failed: {e}")
            return False
