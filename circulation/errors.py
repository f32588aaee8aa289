"""Error taxonomy for circulation operations.

Every error carries the HTTP status category and a short machine-readable
code so the API layer can translate it without knowing each subclass.
"""


class LibraryError(Exception):
    """Base exception for library system errors."""

    status_code = 400
    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LibraryError):
    """Malformed or invalid input, e.g. an unknown role."""

    code = "invalid"


class NotFoundError(LibraryError):
    """Referenced user or checkout does not exist."""

    status_code = 404
    code = "not_found"


class ForbiddenError(LibraryError):
    """The user's role does not permit the action."""

    status_code = 403
    code = "forbidden"


class UnavailableError(LibraryError):
    """No available copy of the book to check out."""

    code = "unavailable"


class ConflictError(LibraryError):
    """The operation conflicts with the current state of a record."""

    code = "conflict"


class AlreadyReturnedError(ConflictError):
    """The checkout has already been returned."""

    code = "already_returned"
