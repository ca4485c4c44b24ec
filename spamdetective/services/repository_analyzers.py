"""
Analyzers that need to look at other accounts: bulk domain registrations,
sequential usernames, registration bursts and inactivity.
"""

import re
from datetime import datetime, timedelta
from typing import List, Optional

from spamdetective.models.account import Account

BURST_WINDOW = timedelta(minutes=30)
INACTIVITY_AGE = timedelta(days=30)

_SEQUENTIAL = re.compile(r"^[a-z]+\d{1,4}$", re.ASCII)


def analyze_bulk_registrations(email_domain: str, repository, reasons: List[str]) -> int:
    if not email_domain:
        return 0

    domain_count = repository.count_by_email_domain(email_domain)
    if domain_count > 5:
        reasons.append(f"Bulk registration ({domain_count} from same domain)")
        return min(20, domain_count)
    return 0


def analyze_sequential_usernames(username: str, repository, reasons: List[str]) -> int:
    """user1, user2, user3... share a base once the trailing digits are removed."""
    username_lower = (username or "").lower()
    if not _SEQUENTIAL.match(username_lower):
        return 0

    base_username = re.sub(r"\d+$", "", username_lower)
    similar_count = repository.count_by_username_prefix(base_username)

    if similar_count > 3:
        reasons.append(f"Sequential username pattern ({similar_count} similar)")
        return 20
    return 0


def analyze_registration_burst(registered: datetime, repository, reasons: List[str]) -> int:
    burst_count = repository.count_registered_within(registered - BURST_WINDOW, registered + BURST_WINDOW)

    if burst_count > 10:
        reasons.append(f"Mass registration burst ({burst_count} users in 1 hour)")
        return 25
    return 0


def analyze_user_activity(
    account: Account,
    repository,
    reasons: List[str],
    now: Optional[datetime] = None,
) -> int:
    now = now or datetime.now()
    if now - account.registered <= INACTIVITY_AGE:
        return 0

    post_count, comment_count = repository.get_activity_counts(account)
    if post_count == 0 and comment_count == 0:
        reasons.append("No activity after 30 days")
        return 20
    return 0
