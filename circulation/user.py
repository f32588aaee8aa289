from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    STUDENT = "student"
    LIBRARIAN = "librarian"


@dataclass
class User:
    id: int
    name: str
    role: Role

    def __post_init__(self) -> None:
        self.role = Role(self.role)

    def can_checkout(self) -> bool:
        # librarians administer the collection but never hold loans
        return self.role is Role.STUDENT

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "role": self.role.value}

    @staticmethod
    def from_dict(data: dict) -> "User":
        return User(id=data["id"], name=data["name"], role=data["role"])
