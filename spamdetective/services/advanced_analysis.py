"""
Advanced username/email signals:
- Shannon entropy
- Unicode homoglyph detection
- Extended suspicious TLD list
- Keyboard walk patterns
- Levenshtein username clusters (repository-backed)
- Registration velocity per IP (repository-backed)
"""

import ipaddress
import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import Levenshtein

from spamdetective.utils.preprocessing import get_email_domain

logger = logging.getLogger(__name__)


SUSPICIOUS_TLDS = frozenset({
    # Free/cheap TLDs commonly abused
    ".tk", ".ml", ".ga", ".cf", ".gq",
    ".pw", ".cc", ".ws", ".xyz", ".top",
    ".buzz", ".click", ".link", ".work",
    ".site", ".online", ".live", ".store",
    ".icu", ".best", ".monster", ".rest",
    ".fit", ".uno", ".cam", ".bid",
    ".win", ".download", ".stream", ".racing",
    ".review", ".trade", ".webcam", ".date",
    ".faith", ".party", ".science", ".cricket",
    ".accountant", ".loan", ".men", ".gdn",
})

# Confusable characters -> ASCII look-alike
HOMOGLYPHS: Dict[str, str] = {
    # Cyrillic
    "а": "a", "е": "e", "о": "o", "р": "p", "с": "c", "х": "x", "у": "y",
    "і": "i",  # Ukrainian
    "ј": "j",  # Serbian
    "ѕ": "s", "ԁ": "d",
    # Latin extensions
    "ɡ": "g", "ɩ": "i",
    # Armenian
    "ո": "n", "ս": "u", "ԝ": "w",
    # Small capitals
    "ᴀ": "a", "ʙ": "b", "ᴄ": "c", "ᴅ": "d", "ᴇ": "e", "ғ": "f", "ɢ": "g",
    "ʜ": "h", "ɪ": "i", "ᴊ": "j", "ᴋ": "k", "ʟ": "l", "ᴍ": "m", "ɴ": "n",
    "ᴏ": "o", "ᴘ": "p", "ǫ": "q", "ʀ": "r", "ꜱ": "s", "ᴛ": "t", "ᴜ": "u",
    "ᴠ": "v", "ᴡ": "w", "ʏ": "y", "ᴢ": "z",
    # Fullwidth digits
    "０": "0", "１": "1", "２": "2", "３": "3", "４": "4",
    "５": "5", "６": "6", "７": "7", "８": "8", "９": "9",
}

KEYBOARD_PATTERNS = (
    "qwerty", "qwertz", "azerty",
    "asdfgh", "asdf", "zxcvbn",
    "123456", "12345", "1234",
    "abcdef", "abcd",
    "password", "pass123", "admin",
    "qazwsx", "wsxedc",
)

LOOPBACK_IPS = frozenset({"127.0.0.1", "::1"})


@dataclass
class SignalResult:
    """Score and reason contributed by one signal (reason is None when score is 0)."""
    score: int = 0
    reason: Optional[str] = None


@dataclass
class EntropyResult(SignalResult):
    entropy: float = 0.0


@dataclass
class HomoglyphResult(SignalResult):
    has_homoglyphs: bool = False
    converted: str = ""
    found: List[str] = field(default_factory=list)


@dataclass
class TLDResult(SignalResult):
    is_suspicious: bool = False
    tld: str = ""


@dataclass
class KeyboardResult(SignalResult):
    has_pattern: bool = False
    pattern: Optional[str] = None


@dataclass
class SimilarityResult(SignalResult):
    similar_count: int = 0
    similar_usernames: List[str] = field(default_factory=list)


@dataclass
class IPVelocityResult(SignalResult):
    registrations: int = 0
    checked: bool = False


# ============== ENTROPY ==============


def calculate_entropy(value: str) -> float:
    """Shannon entropy (base 2) of the lowercased string, rounded to 2 places."""
    if not value:
        return 0.0

    value = value.lower()
    length = len(value)

    entropy = 0.0
    for count in Counter(value).values():
        probability = count / length
        entropy -= probability * math.log2(probability)

    return round(entropy, 2) + 0.0


def get_entropy_score(username: str) -> EntropyResult:
    """
    Normal usernames sit between 2.5 and 4.0 bits; random strings go above 4.5,
    repeated characters fall below 1.5.
    """
    entropy = calculate_entropy(username)
    result = EntropyResult(entropy=entropy)

    if entropy > 4.5 and len(username) >= 8:
        result.score = 25
        result.reason = f"High entropy username ({entropy:.2f})"
    elif entropy < 1.5 and len(username) >= 6:
        result.score = 15
        result.reason = f"Repetitive username pattern ({entropy:.2f} entropy)"

    return result


# ============== HOMOGLYPHS ==============


def check_homoglyphs(username: str) -> HomoglyphResult:
    found = [ch for ch in dict.fromkeys(username or "") if ch in HOMOGLYPHS]
    result = HomoglyphResult(converted=username or "")

    if found:
        result.has_homoglyphs = True
        result.found = found
        result.converted = "".join(HOMOGLYPHS.get(ch, ch) for ch in username)
        result.score = 40
        result.reason = "Unicode homoglyphs detected (spoofing attempt)"

    return result


# ============== TLD ==============


def check_suspicious_tld(email: str) -> TLDResult:
    domain = get_email_domain(email)
    result = TLDResult()
    if not domain:
        return result

    result.tld = "." + domain.rsplit(".", 1)[-1]
    if result.tld in SUSPICIOUS_TLDS:
        result.is_suspicious = True
        result.score = 20
        result.reason = f"Suspicious TLD ({result.tld})"

    return result


# ============== KEYBOARD WALKS ==============


def check_keyboard_patterns(username: str) -> KeyboardResult:
    username_lower = (username or "").lower()
    result = KeyboardResult()

    for pattern in KEYBOARD_PATTERNS:
        if pattern in username_lower:
            result.has_pattern = True
            result.pattern = pattern
            result.score = 20
            result.reason = "Keyboard pattern in username"
            break

    return result


# ============== SIMILARITY CLUSTERS ==============


def find_similar_usernames(
    username: str,
    repository,
    threshold: int = 2,
    cap: int = 500,
) -> SimilarityResult:
    """
    Usernames within `threshold` edits of this one.

    Candidates are limited to logins of similar length and to `cap` rows.
    """
    username_lower = (username or "").lower()
    candidates = repository.candidates_by_username_length(
        len(username or ""), threshold, exclude_login=username, cap=cap
    )

    similar = [
        candidate
        for candidate in candidates
        if 0 < Levenshtein.distance(candidate.lower(), username_lower) <= threshold
    ]

    result = SimilarityResult(similar_count=len(similar), similar_usernames=similar[:10])

    if result.similar_count >= 5:
        result.score = 25
        result.reason = f"Part of username cluster ({result.similar_count} similar)"
    elif result.similar_count >= 3:
        result.score = 15
        result.reason = f"Similar to {result.similar_count} other usernames"

    return result


# ============== IP VELOCITY ==============

# Checked in order; the first valid address wins
CLIENT_IP_HEADERS = ("cf-connecting-ip", "x-forwarded-for", "x-real-ip")


def is_valid_ip(value: Optional[str]) -> bool:
    try:
        ipaddress.ip_address((value or "").strip())
    except ValueError:
        return False
    return True


def get_client_ip(headers: Mapping[str, str], remote_addr: Optional[str] = None) -> Optional[str]:
    """
    Client address behind Cloudflare or a reverse proxy, falling back to the
    socket peer. X-Forwarded-For contributes only its first hop.
    """
    candidates = [headers.get(name) for name in CLIENT_IP_HEADERS] + [remote_addr]
    for candidate in candidates:
        if not candidate:
            continue
        ip = candidate.split(",")[0].strip()
        if is_valid_ip(ip):
            return ip
    return None


def check_ip_registration_velocity(ip: Optional[str], repository) -> IPVelocityResult:
    """Score how many accounts were registered from the same stored IP."""
    result = IPVelocityResult()
    if not ip or ip in LOOPBACK_IPS:
        return result

    result.checked = True
    result.registrations = int(repository.count_by_registration_ip(ip))

    if result.registrations >= 10:
        result.score = 40
        result.reason = f"High registration velocity ({result.registrations} from same IP)"
    elif result.registrations >= 5:
        result.score = 25
        result.reason = f"Multiple registrations from IP ({result.registrations})"
    elif result.registrations >= 3:
        result.score = 15
        result.reason = f"Several registrations from IP ({result.registrations})"

    return result
