"""Tests for username, display name, email and name heuristics."""

from datetime import datetime

import pytest

from spamdetective.models.account import Account
from spamdetective.services.pattern_analyzers import (
    Rule,
    RuleSet,
    analyze_display_name,
    analyze_email_patterns,
    analyze_user_names,
    analyze_username_patterns,
    is_random_string,
    regex_rule,
    run_pattern_analysis,
)


def account(**fields) -> Account:
    values = {
        "id": 1,
        "login": "jonathan.smith",
        "email": "jonathan.smith@example.org",
        "registered": datetime(2024, 1, 1),
        "display_name": "Jonathan Smith",
        "first_name": "Jonathan",
        "last_name": "Smith",
    }
    values.update(fields)
    return Account(**values)


class TestRuleSet:
    def test_first_match_stops(self):
        rules = RuleSet([
            regex_rule("a", r"a", 10, "has a"),
            regex_rule("b", r"b", 20, "has b"),
        ])
        reasons = []
        assert rules.evaluate("ab", reasons) == 10
        assert reasons == ["has a"]

    def test_all_matches_when_not_first_match(self):
        rules = RuleSet([
            Rule("a", lambda v: "a" in v, 10, "has a"),
            Rule("b", lambda v: "b" in v, 20, "has b"),
        ], first_match=False)
        reasons = []
        assert rules.evaluate("ab", reasons) == 30
        assert reasons == ["has a", "has b"]

    def test_no_match(self):
        reasons = []
        assert RuleSet([regex_rule("a", r"a", 10, "has a")]).evaluate("xyz", reasons) == 0
        assert reasons == []


class TestUsernamePatterns:
    def test_multiple_dots(self):
        reasons = []
        assert analyze_username_patterns("ja.me.sw.o.o.ds", reasons) == 60
        assert reasons == ["Suspicious username pattern (multiple dots)"]

    def test_plain_lowercase(self):
        reasons = []
        assert analyze_username_patterns("johnsmith", reasons) == 30
        assert reasons == ["Suspicious username pattern"]

    def test_word_dash_digits(self):
        reasons = []
        assert analyze_username_patterns("wispaky-6855", reasons) == 30

    def test_shape_random_and_spam_are_additive(self):
        reasons = []
        # letters+digits shape, "123" run, and role-name spam pattern
        assert analyze_username_patterns("user123", reasons) == 75
        assert reasons == ["Suspicious username pattern", "Random username", "Common spam username pattern"]

    def test_no_vowels_is_random(self):
        reasons = []
        assert analyze_username_patterns("bcdfgh", reasons) == 55
        assert "Random username" in reasons

    def test_clean_username(self):
        reasons = []
        assert analyze_username_patterns("Jonathan.Smith", reasons) == 0
        assert reasons == []

    @pytest.mark.parametrize("value", ["xkcdzz", "aaab1x", "helloqwerty", "zzz", "12345"])
    def test_is_random_string(self, value):
        assert is_random_string(value) is True

    def test_normal_string_not_random(self):
        assert is_random_string("jonathan") is False


class TestDisplayName:
    def test_missing_display_name(self):
        reasons = []
        assert analyze_display_name(account(display_name=""), reasons) == 70
        assert reasons == ["No display name"]

    def test_display_name_equal_to_login_skips_other_checks(self):
        reasons = []
        assert analyze_display_name(account(login="testuser", display_name="testuser"), reasons) == 70
        assert reasons == ["No display name"]

    def test_numeric_display_name(self):
        reasons = []
        assert analyze_display_name(account(display_name="12 34"), reasons) == 10
        assert reasons == ["Numeric display name"]

    def test_generic_display_name_counted_once(self):
        reasons = []
        assert analyze_display_name(account(display_name="Test User"), reasons) == 8
        assert reasons == ["Generic display name"]


class TestEmailPatterns:
    def test_trailing_numbers_without_short_prefix(self):
        reasons = []
        assert analyze_email_patterns("bob1234567@example.com", reasons) == 25
        assert "Email with trailing numbers" in reasons
        assert "Generic email pattern" in reasons
        assert "Very short email prefix" not in reasons

    def test_short_prefix_and_suspicious_extension(self):
        reasons = []
        assert analyze_email_patterns("ab@spam.tk", reasons) == 23
        assert reasons == ["Suspicious domain extension", "Very short email prefix"]

    def test_numeric_prefix(self):
        reasons = []
        assert analyze_email_patterns("12345@example.com", reasons) == 25
        assert "Numeric email prefix" in reasons

    def test_malformed_email_contributes_nothing(self):
        reasons = []
        assert analyze_email_patterns("not-an-email", reasons) == 0
        assert reasons == []


class TestUserNames:
    def test_both_empty_is_a_small_bonus(self):
        reasons = []
        assert analyze_user_names(account(first_name="", last_name="  "), reasons) == -5
        assert reasons == []

    def test_fake_name(self):
        reasons = []
        assert analyze_user_names(account(first_name="TEST"), reasons) == 15
        assert reasons == ["Fake name used"]

    def test_numeric_name(self):
        reasons = []
        assert analyze_user_names(account(first_name="123", last_name=""), reasons) == 12

    def test_single_character(self):
        reasons = []
        assert analyze_user_names(account(first_name="J"), reasons) == 8
        assert reasons == ["Single character name"]


def test_run_pattern_analysis_clean_account():
    score, reasons = run_pattern_analysis(account())
    assert score == 0
    assert reasons == []
