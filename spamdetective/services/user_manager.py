"""
Account lifecycle: role protection, safe deletion and display formatting.
"""

import logging
from typing import Dict, Iterable, List, Optional

from spamdetective.config import settings, DetectionSettings
from spamdetective.errors import InputError
from spamdetective.models.account import Account
from spamdetective.schemas.analyze_schemas import AnalysisResult, SuspiciousUser
from spamdetective.services.account_repository import AccountRepository
from spamdetective.services.advanced_analysis import LOOPBACK_IPS, is_valid_ip
from spamdetective.utils.risk_levels import risk_priority

logger = logging.getLogger(__name__)


class UserManager:
    def __init__(
        self,
        repository: AccountRepository,
        analysis_cache=None,
        protected_roles: Optional[Iterable[str]] = None,
    ):
        self.repository = repository
        self.analysis_cache = analysis_cache
        self.protected_roles = frozenset(
            settings.protected_roles_list if protected_roles is None else protected_roles
        )

    def is_protected_user(self, account: Account) -> bool:
        return bool(self.protected_roles & account.roles)

    def can_delete_user(self, account: Account) -> bool:
        return not self.is_protected_user(account)

    def get_protected_roles(self) -> List[str]:
        return sorted(self.protected_roles)

    def has_meaningful_orders(self, account: Account) -> bool:
        return self.repository.has_meaningful_orders(account.id)

    def delete_users(self, user_ids: Iterable[int], force: bool = False) -> Dict[str, object]:
        """
        Delete accounts, skipping unknown ids, protected roles and (unless
        force) accounts with orders.
        """
        deleted = 0
        skipped = 0
        protected_users: List[str] = []
        users_with_orders: List[str] = []

        for user_id in user_ids:
            account = self.repository.get_account(user_id)
            if account is None:
                skipped += 1
                continue

            if self.is_protected_user(account):
                skipped += 1
                protected_users.append(account.login)
                continue

            if not force and self.has_meaningful_orders(account):
                skipped += 1
                users_with_orders.append(account.login)
                continue

            if self.repository.delete_account(user_id):
                if self.analysis_cache is not None:
                    self.analysis_cache.clear_user_cache(account)
                deleted += 1
            else:
                skipped += 1
                logger.error(f"Failed to delete user {account.login} (ID: {user_id})")

        message_parts = []
        if deleted > 0:
            message_parts.append(f"Deleted {deleted} users")

        if skipped > 0:
            skip_reasons = []
            if protected_users:
                skip_reasons.append(f"{len(protected_users)} protected by role")
            if users_with_orders:
                skip_reasons.append(f"{len(users_with_orders)} with orders")
            if not skip_reasons:
                skip_reasons.append(f"{skipped} for various reasons")
            message_parts.append("Skipped " + ", ".join(skip_reasons))

        message = ". ".join(message_parts) + "."
        logger.info(message)

        return {
            "success": True,
            "deleted": deleted,
            "skipped": skipped,
            "message": message,
            "protected_users": protected_users,
            "users_with_orders": users_with_orders,
        }

    def store_registration_ip(self, account: Account, ip: Optional[str], config: DetectionSettings) -> bool:
        """
        Remember the signup IP used by the IP velocity and StopForumSpam checks.

        Nothing is stored while track_registration_ip is off, or for a missing
        or loopback address. Raises InputError for a malformed address.
        """
        if not config.track_registration_ip or not ip:
            return False
        ip = ip.strip()
        if not is_valid_ip(ip):
            raise InputError(f"Invalid IP address: {ip!r}")
        if ip in LOOPBACK_IPS:
            return False

        stored = self.repository.store_registration_ip(account.id, ip)
        if stored and self.analysis_cache is not None:
            self.analysis_cache.clear_user_cache(account)
        return stored

    def get_users_for_analysis(self, quick_scan: bool = False) -> List[Account]:
        """Most recent accounts first; a quick scan stops at quick_scan_limit."""
        limit = settings.quick_scan_limit if quick_scan else None
        return self.repository.list_accounts(limit=limit)

    def format_user_for_display(self, account: Account, analysis: AnalysisResult) -> SuspiciousUser:
        return SuspiciousUser(
            id=account.id,
            username=account.login,
            email=account.email,
            display_name=account.display_name,
            registered=account.registered,
            risk_level=analysis.risk_level,
            reasons=list(analysis.reasons),
            score=analysis.score,
            can_delete=self.can_delete_user(account),
            has_orders=account.order_count > 0,
            roles=sorted(account.roles),
        )


def sort_by_risk_and_date(users: List[SuspiciousUser]) -> List[SuspiciousUser]:
    """High risk first; within a tier, newest registration first."""
    return sorted(
        users,
        key=lambda u: (risk_priority(u.risk_level), u.registered),
        reverse=True,
    )
