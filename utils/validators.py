from typing import Optional

from circulation.errors import ValidationError
from circulation.user import Role


class RoleValidator:
    """Validates the role flag carried by every user."""

    ALLOWED = tuple(r.value for r in Role)

    @staticmethod
    def validate_role(raw: Optional[str]) -> Role:
        if raw not in RoleValidator.ALLOWED:
            raise ValidationError("Role must be student or librarian")
        return Role(raw)


class TextValidator:
    """Basic text normalization for catalog and member fields."""

    @staticmethod
    def clean(text: Optional[str]) -> str:
        if text is None:
            return ""
        return text.strip()


class CopyCountValidator:

    @staticmethod
    def normalize(count: Optional[int]) -> int:
        # negative or missing counts create no copies
        if not count or count < 0:
            return 0
        return int(count)
