"""
Whitelist and suspicious-domain lists.
Known good/bad email domains for instant classification.
"""

import logging
import re
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from spamdetective.errors import LookupUnavailable
from spamdetective.models.domain import DomainEntry, ListType
from spamdetective.utils.preprocessing import normalize_domain

logger = logging.getLogger(__name__)

DOMAIN_REGEX = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9]?\.([a-zA-Z]{2,}\.)*[a-zA-Z]{2,}$")


class DomainLists:
    """
    Manages the whitelist and suspicious-domain list.

    Lists are loaded once and kept in memory until a mutation; every
    mutation also flushes all cached analyses, since list membership
    changes the score of every account on that domain.
    """

    def __init__(self, db: Session, analysis_cache=None):
        self.db = db
        self.analysis_cache = analysis_cache
        self._cache: Dict[ListType, Optional[Set[str]]] = {
            ListType.WHITELIST: None,
            ListType.SUSPICIOUS: None,
        }
        self._lock = threading.Lock()

    # ============== READ ==============

    def _load(self, list_type: ListType) -> Set[str]:
        with self._lock:
            cached = self._cache[list_type]
            if cached is None:
                try:
                    rows = self.db.query(DomainEntry.domain).filter(
                        DomainEntry.list_type == list_type.value
                    ).all()
                except SQLAlchemyError as e:
                    raise LookupUnavailable(f"domain lists unavailable: {e}") from e
                cached = {normalize_domain(row.domain) for row in rows}
                self._cache[list_type] = cached
            return set(cached)

    def get_whitelist(self) -> Set[str]:
        return self._load(ListType.WHITELIST)

    def get_suspicious_domains(self) -> Set[str]:
        return self._load(ListType.SUSPICIOUS)

    # Repository-style aliases
    get_allow = get_whitelist
    get_deny = get_suspicious_domains

    @staticmethod
    def is_valid_domain(domain: str) -> bool:
        return bool(DOMAIN_REGEX.match(domain or ""))

    # ============== WRITE ==============

    def _changed(self):
        with self._lock:
            self._cache = {ListType.WHITELIST: None, ListType.SUSPICIOUS: None}
        if self.analysis_cache is not None:
            self.analysis_cache.clear_all_user_cache()

    def _add(self, list_type: ListType, domain: str) -> bool:
        domain = normalize_domain(domain)
        if not domain or domain in self._load(list_type):
            return False
        try:
            self.db.add(DomainEntry(list_type=list_type.value, domain=domain))
            self.db.commit()
        except IntegrityError:
            # Added concurrently by someone else
            self.db.rollback()
            return False
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LookupUnavailable(f"domain lists unavailable: {e}") from e
        self._changed()
        logger.info(f"Added {domain} to {list_type.value}")
        return True

    def _remove(self, list_type: ListType, domain: str) -> bool:
        domain = normalize_domain(domain)
        try:
            deleted = self.db.query(DomainEntry).filter(
                DomainEntry.list_type == list_type.value,
                DomainEntry.domain == domain,
            ).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LookupUnavailable(f"domain lists unavailable: {e}") from e
        if not deleted:
            return False
        self._changed()
        logger.info(f"Removed {domain} from {list_type.value}")
        return True

    def add_to_whitelist(self, domain: str) -> bool:
        """Add a domain to the whitelist. Returns False if already present."""
        return self._add(ListType.WHITELIST, domain)

    def remove_from_whitelist(self, domain: str) -> bool:
        return self._remove(ListType.WHITELIST, domain)

    def add_to_suspicious(self, domain: str) -> bool:
        """Add a domain to the suspicious list. Returns False if already present."""
        return self._add(ListType.SUSPICIOUS, domain)

    def remove_from_suspicious(self, domain: str) -> bool:
        return self._remove(ListType.SUSPICIOUS, domain)

    # ============== BULK ==============

    def export_lists(self) -> Dict[str, object]:
        return {
            "exported_at": datetime.now().isoformat(timespec="seconds"),
            "whitelist": sorted(self.get_whitelist()),
            "suspicious_domains": sorted(self.get_suspicious_domains()),
        }

    def _replace(self, list_type: ListType, domains: Iterable[str]):
        self.db.query(DomainEntry).filter(DomainEntry.list_type == list_type.value).delete(
            synchronize_session=False
        )
        for domain in sorted({normalize_domain(d) for d in domains if normalize_domain(d)}):
            self.db.add(DomainEntry(list_type=list_type.value, domain=domain))

    def import_lists(self, data: Dict[str, List[str]], mode: str = "replace") -> Dict[str, object]:
        """
        Import whitelist/suspicious_domains arrays.

        mode="merge" unions with the current lists, anything else replaces them.
        """
        sections = {
            ListType.WHITELIST: data.get("whitelist"),
            ListType.SUSPICIOUS: data.get("suspicious_domains"),
        }
        try:
            for list_type, domains in sections.items():
                if not isinstance(domains, list):
                    continue
                if mode == "merge":
                    domains = list(self._load(list_type)) + domains
                self._replace(list_type, domains)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LookupUnavailable(f"domain lists unavailable: {e}") from e

        self._changed()
        return {"imported": True, "message": "Domain lists imported successfully"}

    def get_stats(self) -> Dict[str, int]:
        return {
            "whitelist": len(self.get_whitelist()),
            "suspicious": len(self.get_suspicious_domains()),
        }
