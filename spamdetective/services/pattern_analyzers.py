"""
Username, display name, email and name heuristics.

Each analyzer appends reason strings to a shared list and returns the score
it contributes. Pattern lists are ordered (predicate, score, reason) rules;
a first-match RuleSet stops at the first rule that applies.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from spamdetective.errors import InputError
from spamdetective.models.account import Account
from spamdetective.utils.preprocessing import is_numeric, split_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rule:
    """One heuristic: if predicate(value) holds, add score and reason."""
    name: str
    predicate: Callable[[str], bool]
    score: int
    reason: str


def regex_rule(name: str, pattern: str, score: int, reason: str, flags: int = 0) -> Rule:
    compiled = re.compile(pattern, flags)
    return Rule(name=name, predicate=lambda value: compiled.search(value) is not None, score=score, reason=reason)


def contains_any_rule(name: str, needles: Sequence[str], score: int, reason: str) -> Rule:
    return Rule(name=name, predicate=lambda value: any(n in value for n in needles), score=score, reason=reason)


class RuleSet:
    """
    Ordered rules evaluated against a single value.

    first_match=True stops after the first matching rule; otherwise every
    matching rule contributes.
    """

    def __init__(self, rules: Sequence[Rule], first_match: bool = True):
        self.rules = tuple(rules)
        self.first_match = first_match

    def matches(self, value: str) -> List[Rule]:
        matched = []
        for rule in self.rules:
            if rule.predicate(value):
                matched.append(rule)
                if self.first_match:
                    break
        return matched

    def evaluate(self, value: str, reasons: List[str]) -> int:
        score = 0
        for rule in self.matches(value):
            score += rule.score
            reasons.append(rule.reason)
        return score


# ============== USERNAME ==============

SUSPICIOUS_PATTERN = "Suspicious username pattern"
SUSPICIOUS_DOTS = "Suspicious username pattern (multiple dots)"

USERNAME_SHAPE_RULES = RuleSet([
    regex_rule("lowercase_only", r"^[a-z]{6,12}$", 30, SUSPICIOUS_PATTERN),
    regex_rule("letters_digits", r"^[a-z]+\d+$", 30, SUSPICIOUS_PATTERN, re.ASCII),
    regex_rule("word_dash_digits", r"^\w+\-\d+$", 30, SUSPICIOUS_PATTERN, re.ASCII),   # wispaky-6855
    regex_rule(
        "consonant_cluster",
        r"^[bcdfghjklmnpqrstvwxyz]{4,8}[aeiou]{1,3}[bcdfghjklmnpqrstvwxyz]{2,6}$",
        30,
        SUSPICIOUS_PATTERN,
    ),
    regex_rule("short_dotted", r"^[a-z]{1,3}(\.[a-z]{1,3}){3,}$", 60, SUSPICIOUS_DOTS),  # ja.me.sw.o.o.ds
    regex_rule("dotted", r"^[a-z]+(\.[a-z]+){2,}$", 60, SUSPICIOUS_DOTS),
])

SPAM_USERNAME_RULES = RuleSet([
    regex_rule("role_name", r"^(user|admin|test|guest|temp|spam|bot)\d*$", 20, "Common spam username pattern", re.ASCII),
    regex_rule("short_letters_long_digits", r"^[a-z]{1,3}\d{4,}$", 20, "Common spam username pattern", re.ASCII),
    regex_rule("word_underscore_digits", r"^[a-z]+_\d{4,}$", 20, "Common spam username pattern", re.ASCII),
    regex_rule("name_word", r"^(first|last|full)?name\d*$", 20, "Common spam username pattern", re.ASCII),
    regex_rule("letters_eight_digits", r"^[a-z]+\d{8,}$", 20, "Common spam username pattern", re.ASCII),
])

RANDOM_KEYBOARD_PATTERNS = ("qwerty", "asdf", "zxcv", "123", "abc")

_VOWELS = re.compile(r"[aeiou]", re.I)
_CONSONANTS = re.compile(r"[bcdfghjklmnpqrstvwxyz]", re.I)
_REPEATED_CHAR = re.compile(r"(.)\1{2,}")


def is_random_string(value: str) -> bool:
    """
    Heuristic for machine-generated strings: no vowels or no consonants,
    a character repeated 3+ times in a row, or a keyboard/number run.
    """
    if not _VOWELS.search(value) or not _CONSONANTS.search(value):
        return True

    if _REPEATED_CHAR.search(value):
        return True

    lower = value.lower()
    return any(pattern in lower for pattern in RANDOM_KEYBOARD_PATTERNS)


def analyze_username_patterns(username: str, reasons: List[str]) -> int:
    username_lower = (username or "").lower()
    score = USERNAME_SHAPE_RULES.evaluate(username_lower, reasons)

    if is_random_string(username or ""):
        reasons.append("Random username")
        score += 25

    score += SPAM_USERNAME_RULES.evaluate(username_lower, reasons)
    return score


# ============== DISPLAY NAME ==============

GENERIC_DISPLAY_WORDS = ("user", "test", "admin", "guest", "temp")

DISPLAY_NAME_RULES = RuleSet([
    Rule("numeric_display", lambda name: is_numeric(name.replace(" ", "")), 10, "Numeric display name"),
    contains_any_rule("generic_display", GENERIC_DISPLAY_WORDS, 8, "Generic display name"),
], first_match=False)


def analyze_display_name(account: Account, reasons: List[str]) -> int:
    """Missing or login-equal display names short-circuit the other display checks."""
    if not account.display_name or account.display_name == account.login:
        reasons.append("No display name")
        return 70

    return DISPLAY_NAME_RULES.evaluate(account.display_name.lower(), reasons)


# ============== EMAIL ==============

SHORT_SUSPICIOUS_TLDS = (".tk", ".ml", ".ga", ".cf", ".gq", ".pw", ".cc", ".ws")


def analyze_email_patterns(email: str, reasons: List[str]) -> int:
    try:
        prefix, domain = split_email(email)
    except InputError as e:
        logger.debug(f"Skipping email patterns: {e}")
        return 0

    score = 0

    if domain.endswith(SHORT_SUSPICIOUS_TLDS):
        score += 15
        reasons.append("Suspicious domain extension")

    if re.match(r"^[a-z]+\d+@", email.lower(), re.ASCII):
        score += 15
        reasons.append("Generic email pattern")

    # Bots often append a counter to a base name
    if re.search(r"\d{2,}@", email, re.ASCII):
        score += 10
        reasons.append("Email with trailing numbers")

    if len(prefix) < 4:
        score += 8
        reasons.append("Very short email prefix")

    if is_numeric(prefix):
        score += 15
        reasons.append("Numeric email prefix")

    return score


# ============== FIRST / LAST NAME ==============

FAKE_NAMES = frozenset({"test", "user", "admin", "guest", "temp", "spam", "bot"})


def analyze_user_names(account: Account, reasons: List[str]) -> int:
    first_name = (account.first_name or "").strip()
    last_name = (account.last_name or "").strip()

    if not first_name and not last_name:
        return -5

    score = 0

    if first_name.lower() in FAKE_NAMES or last_name.lower() in FAKE_NAMES:
        score += 15
        reasons.append("Fake name used")

    if is_numeric(first_name) or is_numeric(last_name):
        score += 12
        reasons.append("Numeric name fields")

    if len(first_name) == 1 or len(last_name) == 1:
        score += 8
        reasons.append("Single character name")

    return score


def run_pattern_analysis(account: Account, reasons: Optional[List[str]] = None) -> Tuple[int, List[str]]:
    """Run all pattern and name analyzers in order."""
    reasons = [] if reasons is None else reasons
    score = analyze_username_patterns(account.login, reasons)
    score += analyze_display_name(account, reasons)
    score += analyze_email_patterns(account.email, reasons)
    score += analyze_user_names(account, reasons)
    return score, reasons
