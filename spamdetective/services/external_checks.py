"""
External reputation checks:
- StopForumSpam email and IP lookups
- Mail exchanger validation (DNS over HTTPS, A record fallback)
- Gravatar existence

Every provider goes through CachedRemoteLookup: results are cached per
email/IP for 24h, and any network or decoding failure becomes an
unchecked result that contributes nothing.
"""

import hashlib
import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import requests

from spamdetective.config import settings, DetectionSettings
from spamdetective.errors import ExternalServiceError
from spamdetective.models.account import Account
from spamdetective.services.cache_service import (
    CACHE_PREFIX,
    TTLCache,
    cache_store,
    cached_lookup,
    fingerprint,
)
from spamdetective.utils.logging_config import metrics
from spamdetective.utils.preprocessing import get_email_domain

logger = logging.getLogger(__name__)

EXTERNAL_CACHE_TTL = 86400  # 24 hours
OLD_ACCOUNT_AGE = timedelta(days=30)

DNS_TYPE_A = 1
DNS_TYPE_MX = 15
DNS_NOERROR = 0
DNS_NXDOMAIN = 3

LOOPBACK_IPS = frozenset({"127.0.0.1", "::1"})


@dataclass(frozen=True)
class ExternalCheckResult:
    """
    Outcome of one provider lookup.

    flagged means the provider reported something bad: listed in
    StopForumSpam, no mail records, or no Gravatar.
    """
    flagged: bool = False
    confidence: float = 0.0
    frequency: int = 0
    checked: bool = False
    error: Optional[str] = None


NOT_CHECKED = ExternalCheckResult()


class CachedRemoteLookup:
    """
    A remote provider call with its own cache namespace and TTL.

    fetch(value) returns an ExternalCheckResult or raises ExternalServiceError.
    Only checked results are cached.
    """

    def __init__(
        self,
        provider: str,
        key_prefix: str,
        fetch: Callable[[str], ExternalCheckResult],
        cache: Optional[TTLCache] = None,
        ttl: int = EXTERNAL_CACHE_TTL,
    ):
        self.provider = provider
        self.key_prefix = key_prefix
        self.fetch = fetch
        self.cache = cache if cache is not None else cache_store
        self.ttl = ttl

    def make_key(self, value: str) -> str:
        return f"{CACHE_PREFIX}{self.key_prefix}_{fingerprint(value)}"

    def __call__(self, value: str) -> ExternalCheckResult:
        try:
            return cached_lookup(
                self.cache,
                self.make_key(value),
                lambda: self.fetch(value),
                ttl=self.ttl,
                should_cache=lambda result: result.checked,
            )
        except ExternalServiceError as e:
            logger.debug(f"External check failed, treating as not checked: {e}")
            metrics.increment(f"external.{self.provider}.errors")
            return ExternalCheckResult(error=e.message)


def _get_json(provider: str, url: str, params: dict, timeout: float, headers: Optional[dict] = None) -> dict:
    try:
        response = requests.get(url, params=params, headers=headers, timeout=timeout)
        response.raise_for_status()
        return response.json()
    except requests.RequestException as e:
        raise ExternalServiceError(provider, str(e)) from e
    except ValueError as e:
        raise ExternalServiceError(provider, f"invalid JSON response: {e}") from e


class ExternalChecker:
    """Runs the enabled provider lookups for one account."""

    def __init__(self, cache: Optional[TTLCache] = None, timeout: Optional[float] = None):
        self.timeout = settings.external_timeout if timeout is None else timeout
        self.sfs_email = CachedRemoteLookup("stopforumspam", "sfs", self._fetch_sfs_email, cache)
        self.sfs_ip = CachedRemoteLookup("stopforumspam", "sfs_ip", self._fetch_sfs_ip, cache)
        self.mx = CachedRemoteLookup("mx", "mx", self._fetch_mx, cache)
        self.gravatar = CachedRemoteLookup("gravatar", "gravatar", self._fetch_gravatar, cache)

    # ============== PROVIDERS ==============

    def _query_sfs(self, field: str, value: str) -> ExternalCheckResult:
        data = _get_json(
            "stopforumspam",
            settings.stopforumspam_url,
            {field: value, "json": ""},
            self.timeout,
        )
        if not isinstance(data, dict) or data.get("success") != 1:
            raise ExternalServiceError("stopforumspam", "unsuccessful response")

        entry = data.get(field) or {}
        if entry.get("appears") != 1:
            return ExternalCheckResult(checked=True)

        return ExternalCheckResult(
            flagged=True,
            confidence=float(entry.get("confidence") or 0),
            frequency=int(entry.get("frequency") or 0),
            checked=True,
        )

    def _fetch_sfs_email(self, email: str) -> ExternalCheckResult:
        return self._query_sfs("email", email)

    def _fetch_sfs_ip(self, ip: str) -> ExternalCheckResult:
        return self._query_sfs("ip", ip)

    def _resolve(self, domain: str, record_type: str, type_code: int) -> bool:
        data = _get_json(
            "mx",
            settings.dns_over_https_url,
            {"name": domain, "type": record_type},
            self.timeout,
            headers={"Accept": "application/dns-json"},
        )
        status = data.get("Status")
        if status == DNS_NXDOMAIN:
            return False
        if status != DNS_NOERROR:
            raise ExternalServiceError("mx", f"DNS status {status} for {domain}")
        return any(answer.get("type") == type_code for answer in data.get("Answer") or [])

    def _fetch_mx(self, domain: str) -> ExternalCheckResult:
        has_mail_host = (
            self._resolve(domain, "MX", DNS_TYPE_MX)
            or self._resolve(domain, "A", DNS_TYPE_A)
        )
        return ExternalCheckResult(flagged=not has_mail_host, checked=True)

    def _fetch_gravatar(self, email: str) -> ExternalCheckResult:
        email_hash = hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()
        url = f"{settings.gravatar_url.rstrip('/')}/{email_hash}"
        try:
            response = requests.head(url, params={"d": "404", "s": "1"}, timeout=self.timeout)
        except requests.RequestException as e:
            raise ExternalServiceError("gravatar", str(e)) from e

        if response.status_code == 200:
            return ExternalCheckResult(checked=True)
        if response.status_code == 404:
            return ExternalCheckResult(flagged=True, checked=True)
        raise ExternalServiceError("gravatar", f"unexpected status {response.status_code}")

    # ============== SCORING ==============

    def run_all(
        self,
        account: Account,
        config: DetectionSettings,
        reasons: List[str],
        now: Optional[datetime] = None,
    ) -> int:
        """Score every enabled provider for the account; unchecked results add 0."""
        if not config.enable_external_checks:
            return 0

        score = 0

        if config.enable_stopforumspam:
            sfs = self.sfs_email(account.email)
            if sfs.flagged:
                confidence = min(sfs.confidence, 100)
                score += int(confidence / 100 * 50)
                reasons.append(f"StopForumSpam: {math.floor(sfs.confidence + 0.5)}% confidence ({sfs.frequency} reports)")

            ip = account.registration_ip
            if ip and ip not in LOOPBACK_IPS:
                sfs_ip = self.sfs_ip(ip)
                if sfs_ip.flagged:
                    score += int(sfs_ip.confidence / 100 * 30)
                    reasons.append(f"IP flagged in StopForumSpam ({sfs_ip.frequency} reports)")

        if config.enable_mx_check:
            domain = get_email_domain(account.email)
            if domain:
                mx = self.mx(domain)
                if mx.checked and mx.flagged:
                    score += 35
                    reasons.append("Invalid email domain (no MX records)")

        if config.enable_gravatar_check:
            gravatar = self.gravatar(account.email)
            if gravatar.checked:
                if not gravatar.flagged:
                    score -= 10
                elif (now or datetime.now()) - account.registered > OLD_ACCOUNT_AGE:
                    score += 5
                    reasons.append("No Gravatar for old account")

        return score


class ExternalCheckGate:
    """
    Caps concurrent external lookups across batch workers.

    A worker that cannot get a slot immediately skips its external checks.
    """

    def __init__(self, max_concurrency: Optional[int] = None):
        self._slots = threading.BoundedSemaphore(max_concurrency or settings.external_max_concurrency)

    def try_enter(self) -> bool:
        return self._slots.acquire(blocking=False)

    def leave(self):
        self._slots.release()
