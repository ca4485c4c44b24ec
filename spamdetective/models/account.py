"""
Immutable account snapshot handed to the analyzers.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional


@dataclass(frozen=True)
class Account:
    """A registered user as seen by one analysis pass."""
    id: int
    login: str
    email: str
    registered: datetime
    display_name: str = ""
    first_name: str = ""
    last_name: str = ""
    roles: FrozenSet[str] = field(default_factory=frozenset)
    post_count: int = 0
    comment_count: int = 0
    order_count: int = 0
    registration_ip: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Account":
        """Build a snapshot from a `User` row."""
        return cls(
            id=row.id,
            login=row.user_login or "",
            email=row.user_email or "",
            registered=row.user_registered,
            display_name=row.display_name or "",
            first_name=row.first_name or "",
            last_name=row.last_name or "",
            roles=frozenset(row.roles or []),
            post_count=row.post_count or 0,
            comment_count=row.comment_count or 0,
            order_count=row.order_count or 0,
            registration_ip=row.registration_ip,
        )
