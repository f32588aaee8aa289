"""Membership store: registered users and their roles."""

import logging
from typing import List, Optional

from circulation.database import Database
from circulation.errors import ValidationError
from circulation.user import User
from utils import validators

logger = logging.getLogger(__name__)


class MembershipStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    def register_user(self, name: str, role: str) -> User:
        """Register a user; the role is checked before anything is written."""
        try:
            valid_role = validators.RoleValidator.validate_role(role)
        except ValidationError:
            logger.warning(f"Rejected registration with role {role!r}")
            raise
        name = validators.TextValidator.clean(name)
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO users (name, role) VALUES (?, ?)", (name, valid_role.value)
            )
            user = User(id=cursor.lastrowid, name=name, role=valid_role)
        logger.info(f"User {user.id} registered as {user.role.value}")
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT id, name, role FROM users WHERE id = ?", (user_id,)).fetchone()
        return User.from_dict(dict(row)) if row else None

    def list_users(self) -> List[User]:
        with self.db.connection() as conn:
            rows = conn.execute("SELECT id, name, role FROM users ORDER BY id").fetchall()
        return [User.from_dict(dict(r)) for r in rows]

    def count_users(self) -> int:
        with self.db.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
