"""Library Circulation - Core Application Package

This package contains the core modules of the library backend:
- Data models (book.py, user.py, loans.py)
- Persistence context and schema (database.py)
- Catalog, membership and reservation stores
- Checkout engine (engine.py)
- Library facade wiring everything together (library.py)
"""

from circulation.errors import (
    LibraryError,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    UnavailableError,
    ConflictError,
    AlreadyReturnedError,
)
from circulation.book import Book, BookCopy, CopyStatus
from circulation.user import User, Role
from circulation.loans import Checkout, Reservation, ReturnResult
from circulation.database import Database
from circulation.library import Library

__all__ = [
    # errors
    "LibraryError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "UnavailableError",
    "ConflictError",
    "AlreadyReturnedError",
    # models
    "Book",
    "BookCopy",
    "CopyStatus",
    "User",
    "Role",
    "Checkout",
    "Reservation",
    "ReturnResult",
    # persistence + facade
    "Database",
    "Library",
]
