"""
Account repository backed by the users table.

Opens a short-lived session per call so it can be shared by the
batch worker threads.
"""

import logging
from datetime import datetime
from functools import wraps
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from spamdetective.errors import LookupUnavailable
from spamdetective.models.account import Account
from spamdetective.models.user import User

logger = logging.getLogger(__name__)


def _lookup(method):
    """Turn database failures into LookupUnavailable."""
    @wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"Account lookup {method.__name__} failed: {e}")
            raise LookupUnavailable(f"account repository unavailable ({method.__name__})") from e
    return wrapper


class AccountRepository:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # ============== ACCOUNTS ==============

    @_lookup
    def list_accounts(self, limit: Optional[int] = None) -> List[Account]:
        """Accounts newest first; limit=None means unbounded."""
        with self.session_factory() as db:
            query = db.query(User).order_by(User.user_registered.desc(), User.id.desc())
            if limit is not None:
                query = query.limit(limit)
            return [Account.from_row(row) for row in query.all()]

    @_lookup
    def get_account(self, account_id: int) -> Optional[Account]:
        with self.session_factory() as db:
            row = db.get(User, account_id)
            return Account.from_row(row) if row is not None else None

    @_lookup
    def get_accounts(self, account_ids: Iterable[int]) -> List[Account]:
        ids = list(account_ids)
        if not ids:
            return []
        with self.session_factory() as db:
            rows = db.query(User).filter(User.id.in_(ids)).all()
            by_id = {row.id: Account.from_row(row) for row in rows}
        return [by_id[i] for i in ids if i in by_id]

    @_lookup
    def delete_account(self, account_id: int) -> bool:
        with self.session_factory() as db:
            deleted = db.query(User).filter(User.id == account_id).delete(synchronize_session=False)
            db.commit()
            return deleted > 0

    # ============== AGGREGATE QUERIES ==============

    @_lookup
    def count_by_email_domain(self, domain: str) -> int:
        if not domain:
            return 0
        with self.session_factory() as db:
            return db.query(func.count(User.id)).filter(
                func.lower(User.user_email).endswith("@" + domain.lower(), autoescape=True)
            ).scalar() or 0

    @_lookup
    def count_by_username_prefix(self, prefix: str) -> int:
        with self.session_factory() as db:
            return db.query(func.count(User.id)).filter(
                func.lower(User.user_login).startswith(prefix.lower(), autoescape=True)
            ).scalar() or 0

    @_lookup
    def count_registered_within(self, start: datetime, end: datetime) -> int:
        """Accounts registered in [start, end], both ends inclusive."""
        with self.session_factory() as db:
            return db.query(func.count(User.id)).filter(
                User.user_registered.between(start, end)
            ).scalar() or 0

    @_lookup
    def candidates_by_username_length(
        self,
        length: int,
        tolerance: int,
        exclude_login: str,
        cap: int = 500,
    ) -> List[str]:
        """Logins whose length is within +/- tolerance of length, excluding one login."""
        min_len = max(1, length - tolerance)
        max_len = length + tolerance
        with self.session_factory() as db:
            rows = (
                db.query(User.user_login)
                .filter(
                    func.length(User.user_login).between(min_len, max_len),
                    User.user_login != exclude_login,
                )
                .order_by(User.id)
                .limit(cap)
                .all()
            )
            return [row.user_login for row in rows]

    @_lookup
    def count_by_registration_ip(self, ip: str) -> int:
        with self.session_factory() as db:
            return db.query(func.count(User.id)).filter(User.registration_ip == ip).scalar() or 0

    @_lookup
    def get_activity_counts(self, account: Account) -> Tuple[int, int]:
        """(posts, comments) as currently stored."""
        with self.session_factory() as db:
            row = db.get(User, account.id)
            if row is None:
                return account.post_count, account.comment_count
            return row.post_count or 0, row.comment_count or 0

    @_lookup
    def has_meaningful_orders(self, account_id: int) -> bool:
        with self.session_factory() as db:
            count = db.query(User.order_count).filter(User.id == account_id).scalar()
            return bool(count)

    @_lookup
    def store_registration_ip(self, account_id: int, ip: str) -> bool:
        """Overwrite the stored signup IP. Returns False for an unknown account."""
        with self.session_factory() as db:
            updated = db.query(User).filter(User.id == account_id).update(
                {User.registration_ip: ip}, synchronize_session=False
            )
            db.commit()
            return updated > 0
