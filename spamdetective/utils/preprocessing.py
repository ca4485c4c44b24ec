import re
from typing import Tuple

from spamdetective.errors import InputError


def split_email(email: str) -> Tuple[str, str]:
    """
    Split an address into (prefix, lowercased domain).

    Raises InputError when there is no '@' or either side is empty.
    """
    prefix, sep, domain = (email or "").partition("@")
    if not sep or not prefix or not domain.strip():
        raise InputError(f"Malformed email address: {email!r}")
    return prefix, domain.strip().lower()


def get_email_domain(email: str) -> str:
    """Lowercased part after the first '@', or "" when there is none."""
    parts = (email or "").split("@")
    return parts[1].strip().lower() if len(parts) > 1 else ""


def normalize_domain(domain: str) -> str:
    return (domain or "").strip().lower()


def is_numeric(value: str) -> bool:
    """Loose numeric check: "42", "-3", "1.5" and "1e3" are numeric; "" is not."""
    value = (value or "").strip()
    if not value:
        return False
    return re.fullmatch(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?", value) is not None
