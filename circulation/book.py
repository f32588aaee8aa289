from __future__ import annotations

from enum import Enum


class CopyStatus(str, Enum):
    AVAILABLE = "available"
    CHECKED_OUT = "checked_out"


class BookCopy:
    """One lendable copy of a Book."""

    def __init__(self, id: int, book_id: int, status: CopyStatus | str = CopyStatus.AVAILABLE) -> None:
        self.id = id
        self.book_id = book_id
        self.status = CopyStatus(status)

    @property
    def is_available(self) -> bool:
        return self.status is CopyStatus.AVAILABLE

    def to_dict(self) -> dict:
        return {"id": self.id, "book_id": self.book_id, "status": self.status.value}

    @staticmethod
    def from_dict(data: dict) -> "BookCopy":
        return BookCopy(id=data["id"], book_id=data["book_id"], status=data["status"])


class Book:
    """A catalogued title and the copies it owns."""

    def __init__(self, id: int, title: str, author: str, isbn: str,
                 copies: list[BookCopy] | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = isbn.strip()
        self.copies = copies or []

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    @property
    def available_copies(self) -> int:
        return sum(1 for c in self.copies if c.is_available)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "copies": [c.to_dict() for c in self.copies],
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        copies = [c if isinstance(c, BookCopy) else BookCopy.from_dict(c) for c in data.get("copies") or []]
        return Book(
            id=data["id"],
            title=data["title"],
            author=data["author"],
            isbn=data["isbn"],
            copies=copies,
        )
