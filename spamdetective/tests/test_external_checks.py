"""Tests for the external reputation checks (network stubbed)."""

import hashlib
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests

from spamdetective.config import DetectionSettings
from spamdetective.models.account import Account
from spamdetective.services.cache_service import TTLCache
from spamdetective.services.external_checks import ExternalCheckGate, ExternalChecker
from spamdetective.utils.logging_config import metrics

SFS_ONLY = DetectionSettings(
    enable_external_checks=True,
    enable_stopforumspam=True,
    enable_mx_check=False,
    enable_gravatar_check=False,
)
MX_ONLY = DetectionSettings(enable_external_checks=True, enable_mx_check=True, enable_gravatar_check=False)
GRAVATAR_ONLY = DetectionSettings(enable_external_checks=True, enable_mx_check=False, enable_gravatar_check=True)


def json_response(payload, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


def make_account(**fields) -> Account:
    values = {
        "id": 1,
        "login": "jonathan.smith",
        "email": "jonathan.smith@example.org",
        "registered": datetime.now() - timedelta(days=2),
    }
    values.update(fields)
    return Account(**values)


@pytest.fixture
def checker():
    return ExternalChecker(cache=TTLCache(max_size=100, default_ttl=3600), timeout=1.0)


class TestStopForumSpam:
    def test_flagged_email(self, checker):
        payload = {"success": 1, "email": {"appears": 1, "confidence": 90.0, "frequency": 12}}
        with patch("spamdetective.services.external_checks.requests.get", return_value=json_response(payload)):
            reasons = []
            assert checker.run_all(make_account(), SFS_ONLY, reasons) == 45
        assert reasons == ["StopForumSpam: 90% confidence (12 reports)"]

    @pytest.mark.parametrize("confidence,shown", [(12.5, "13%"), (2.5, "3%"), (12.4, "12%")])
    def test_confidence_rounds_half_up(self, checker, confidence, shown):
        payload = {"success": 1, "email": {"appears": 1, "confidence": confidence, "frequency": 2}}
        with patch("spamdetective.services.external_checks.requests.get", return_value=json_response(payload)):
            reasons = []
            checker.run_all(make_account(), SFS_ONLY, reasons)
        assert reasons == [f"StopForumSpam: {shown} confidence (2 reports)"]

    def test_confidence_capped(self, checker):
        payload = {"success": 1, "email": {"appears": 1, "confidence": 150, "frequency": 1}}
        with patch("spamdetective.services.external_checks.requests.get", return_value=json_response(payload)):
            assert checker.run_all(make_account(), SFS_ONLY, []) == 50

    def test_clean_email(self, checker):
        payload = {"success": 1, "email": {"appears": 0, "frequency": 0}}
        with patch("spamdetective.services.external_checks.requests.get", return_value=json_response(payload)):
            reasons = []
            assert checker.run_all(make_account(), SFS_ONLY, reasons) == 0
        assert reasons == []

    def test_flagged_ip(self, checker):
        def fake_get(url, params=None, headers=None, timeout=None):
            if "ip" in params:
                return json_response({"success": 1, "ip": {"appears": 1, "confidence": 50, "frequency": 3}})
            return json_response({"success": 1, "email": {"appears": 0}})

        with patch("spamdetective.services.external_checks.requests.get", side_effect=fake_get):
            reasons = []
            score = checker.run_all(make_account(registration_ip="203.0.113.9"), SFS_ONLY, reasons)
        assert score == 15
        assert reasons == ["IP flagged in StopForumSpam (3 reports)"]

    def test_result_is_cached(self, checker):
        payload = {"success": 1, "email": {"appears": 1, "confidence": 90.0, "frequency": 12}}
        with patch(
            "spamdetective.services.external_checks.requests.get", return_value=json_response(payload)
        ) as mock_get:
            checker.run_all(make_account(), SFS_ONLY, [])
            checker.run_all(make_account(id=2), SFS_ONLY, [])
        assert mock_get.call_count == 1

    def test_timeout_is_not_checked_and_not_cached(self, checker):
        with patch(
            "spamdetective.services.external_checks.requests.get",
            side_effect=requests.Timeout("timed out"),
        ) as mock_get:
            reasons = []
            assert checker.run_all(make_account(), SFS_ONLY, reasons) == 0
            checker.run_all(make_account(), SFS_ONLY, [])
        assert reasons == []
        assert mock_get.call_count == 2
        assert metrics.get_stats()["counters"]["external.stopforumspam.errors"] == 2

    def test_unsuccessful_response_is_not_checked(self, checker):
        with patch("spamdetective.services.external_checks.requests.get", return_value=json_response({"success": 0})):
            result = checker.sfs_email("someone@example.org")
        assert result.checked is False
        assert result.error is not None

    def test_disabled_makes_no_calls(self, checker):
        config = DetectionSettings(enable_external_checks=False, enable_stopforumspam=True)
        with patch("spamdetective.services.external_checks.requests.get") as mock_get:
            assert checker.run_all(make_account(), config, []) == 0
        mock_get.assert_not_called()


class TestMXCheck:
    def test_no_mx_and_no_a_record(self, checker):
        with patch(
            "spamdetective.services.external_checks.requests.get",
            return_value=json_response({"Status": 0, "Answer": []}),
        ) as mock_get:
            reasons = []
            assert checker.run_all(make_account(), MX_ONLY, reasons) == 35
        assert reasons == ["Invalid email domain (no MX records)"]
        assert [c.kwargs["params"]["type"] for c in mock_get.call_args_list] == ["MX", "A"]

    def test_nxdomain(self, checker):
        with patch(
            "spamdetective.services.external_checks.requests.get",
            return_value=json_response({"Status": 3}),
        ):
            assert checker.run_all(make_account(), MX_ONLY, []) == 35

    def test_mx_present(self, checker):
        payload = {"Status": 0, "Answer": [{"type": 15, "data": "10 mx.example.org."}]}
        with patch(
            "spamdetective.services.external_checks.requests.get", return_value=json_response(payload)
        ) as mock_get:
            assert checker.run_all(make_account(), MX_ONLY, []) == 0
        assert mock_get.call_count == 1

    def test_a_record_fallback(self, checker):
        def fake_get(url, params=None, headers=None, timeout=None):
            if params["type"] == "MX":
                return json_response({"Status": 0})
            return json_response({"Status": 0, "Answer": [{"type": 1, "data": "192.0.2.1"}]})

        with patch("spamdetective.services.external_checks.requests.get", side_effect=fake_get):
            assert checker.run_all(make_account(), MX_ONLY, []) == 0

    def test_servfail_is_not_checked(self, checker):
        with patch(
            "spamdetective.services.external_checks.requests.get",
            return_value=json_response({"Status": 2}),
        ):
            assert checker.run_all(make_account(), MX_ONLY, []) == 0


class TestGravatar:
    def head_returning(self, status_code):
        response = MagicMock()
        response.status_code = status_code
        return patch("spamdetective.services.external_checks.requests.head", return_value=response)

    def test_found_lowers_score_without_reason(self, checker):
        with self.head_returning(200):
            reasons = []
            assert checker.run_all(make_account(), GRAVATAR_ONLY, reasons) == -10
        assert reasons == []

    def test_missing_on_old_account(self, checker):
        old = make_account(registered=datetime.now() - timedelta(days=45))
        with self.head_returning(404):
            reasons = []
            assert checker.run_all(old, GRAVATAR_ONLY, reasons) == 5
        assert reasons == ["No Gravatar for old account"]

    def test_missing_on_young_account(self, checker):
        with self.head_returning(404):
            assert checker.run_all(make_account(), GRAVATAR_ONLY, []) == 0

    def test_server_error_is_not_checked(self, checker):
        with self.head_returning(500):
            assert checker.run_all(make_account(), GRAVATAR_ONLY, []) == 0

    def test_hash_uses_normalized_email(self, checker):
        with self.head_returning(200) as mock_head:
            checker.gravatar(" Someone@Example.org ")
        expected = hashlib.md5(b"someone@example.org").hexdigest()
        assert mock_head.call_args.args[0].endswith("/" + expected)


class TestExternalCheckGate:
    def test_try_enter_never_blocks(self):
        gate = ExternalCheckGate(max_concurrency=1)
        assert gate.try_enter() is True
        assert gate.try_enter() is False
        gate.leave()
        assert gate.try_enter() is True
