"""
Authorization models.

This module defines:
- The fixed role set (CUSTOMER, ADMIN)
- The per-request identity bound by the authentication middleware
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    """Roles a customer can hold."""
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Role"]:
        """Case-insensitive lookup. Returns None for unknown or blank values."""
        if value is None:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


@dataclass(frozen=True)
class Identity:
    """Who is making the current request."""
    subject_id: str
    email: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def owns(self, customer_id: str) -> bool:
        return self.subject_id == str(customer_id)
