"""
Customer account as seen by the ordering core.

Accounts are managed elsewhere (registration, login, profile editing); the
ordering workflow only reads the fields that influence pricing, delivery and
authorization.
"""
from dataclasses import dataclass
from typing import Optional

SHOPPER_ROLE = "user"
ADMIN_ROLE = "admin"


@dataclass
class Customer:
    id: int
    username: str
    email: str
    role: str = SHOPPER_ROLE
    address: Optional[str] = None
    contact: Optional[str] = None
    free_delivery: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @property
    def is_shopper(self) -> bool:
        return self.role == SHOPPER_ROLE
