"""HTTP-level tests for the public and admin endpoints."""

from spamdetective.config import settings
from spamdetective.services.cache_service import cache_store


class TestHealth:
    def test_health_no_auth(self, client, monkeypatch):
        monkeypatch.setattr(settings, "api_token", "secret")
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestAuth:
    def test_missing_key(self, client, monkeypatch):
        monkeypatch.setattr(settings, "api_token", "secret")
        response = client.post("/analyze", json={})
        assert response.status_code == 401

    def test_wrong_key(self, client, monkeypatch):
        monkeypatch.setattr(settings, "api_token", "secret")
        response = client.get("/settings", headers={"X-API-Key": "nope"})
        assert response.status_code == 401

    def test_valid_key(self, client, monkeypatch):
        monkeypatch.setattr(settings, "api_token", "secret")
        response = client.get("/settings", headers={"X-API-Key": "secret"})
        assert response.status_code == 200


class TestAnalyzeEndpoints:
    def test_analyze(self, client, make_user):
        make_user()
        spammy = make_user(display_name="")
        make_user(display_name="", roles=["administrator"])

        response = client.post("/analyze", json={"quick_scan": True})

        assert response.status_code == 200
        body = response.json()
        assert [u["id"] for u in body["users"]] == [spammy.id]
        assert body["users"][0]["risk_level"] == "high"
        assert body["total_analyzed"] == 3
        assert body["skipped"]["protected_roles"] == 1

    def test_reanalyze(self, client, make_user):
        spammy = make_user(display_name="")
        clean = make_user()

        response = client.post("/reanalyze", json={"user_ids": [spammy.id, clean.id]})

        assert response.status_code == 200
        body = response.json()
        assert [u["id"] for u in body["still_flagged"]] == [spammy.id]
        assert body["removed_count"] == 1
        assert body["total_reanalyzed"] == 2

    def test_reanalyze_requires_ids(self, client):
        assert client.post("/reanalyze", json={"user_ids": []}).status_code == 422

    def test_delete(self, client, make_user):
        spammy = make_user()
        admin = make_user(roles=["administrator"])

        response = client.post("/users/delete", json={"user_ids": [spammy.id, admin.id]})

        assert response.status_code == 200
        body = response.json()
        assert body["deleted"] == 1
        assert body["message"] == "Deleted 1 users. Skipped 1 protected by role."


class TestDomainEndpoints:
    def test_add_list_remove(self, client):
        response = client.post("/domains/whitelist", json={"domain": " Good.Example "})
        assert response.status_code == 200
        assert response.json()["success"] is True

        assert client.get("/domains/whitelist").json()["domains"] == ["good.example"]

        again = client.post("/domains/whitelist", json={"domain": "good.example"})
        assert again.json()["success"] is False

        removed = client.request("DELETE", "/domains/whitelist", json={"domain": "good.example"})
        assert removed.json()["success"] is True
        assert client.get("/domains/whitelist").json()["domains"] == []

    def test_invalid_domain(self, client):
        response = client.post("/domains/suspicious", json={"domain": "not a domain"})
        assert response.status_code == 400

    def test_unknown_list(self, client):
        assert client.get("/domains/blacklist").status_code == 404

    def test_suspicious_domain_changes_analysis(self, client, make_user):
        make_user(user_email="jonathan.smith@spam.example")
        assert client.post("/analyze", json={}).json()["users"] == []

        client.post("/domains/suspicious", json={"domain": "spam.example"})
        users = client.post("/analyze", json={}).json()["users"]
        assert "Known spam domain" in users[0]["reasons"]

    def test_export_import(self, client):
        client.post("/domains/suspicious", json={"domain": "bad.example"})

        response = client.post("/domains/import", json={"whitelist": ["a.example", "b.example"], "mode": "merge"})
        assert response.status_code == 200
        assert response.json()["stats"] == {"whitelist": 2, "suspicious": 1}

        exported = client.get("/domains/export").json()
        assert exported["whitelist"] == ["a.example", "b.example"]
        assert exported["suspicious_domains"] == ["bad.example"]

    def test_import_rejects_bad_mode(self, client):
        response = client.post("/domains/import", json={"whitelist": [], "mode": "append"})
        assert response.status_code == 422

    def test_import_requires_a_list(self, client):
        assert client.post("/domains/import", json={"mode": "merge"}).status_code == 400


class TestSettingsEndpoints:
    def test_get_defaults(self, client):
        body = client.get("/settings").json()
        assert body["risk_threshold_low"] == 25
        assert body["enable_external_checks"] is False

    def test_update(self, client):
        response = client.put("/settings", json={"risk_threshold_high": 80})
        assert response.status_code == 200
        assert response.json()["settings"]["risk_threshold_high"] == 80
        assert client.get("/settings").json()["risk_threshold_high"] == 80

    def test_non_ascending_thresholds(self, client):
        response = client.put("/settings", json={"risk_threshold_low": 50, "risk_threshold_medium": 45})
        assert response.status_code == 400
        assert client.get("/settings").json()["risk_threshold_low"] == 25


class TestMaintenanceEndpoints:
    def test_cache_clear(self, client, make_user):
        make_user(display_name="")
        client.post("/analyze", json={})

        response = client.post("/cache/clear")
        assert response.status_code == 200
        assert response.json()["cache_cleared"] is True

        again = client.post("/cache/clear").json()
        assert again["cache_cleared"] is False
        assert again["message"] == "No cache entries to clear"

    def test_cache_cleanup(self, client):
        cache_store.set("spam_detective_user_1_abc", "stale", ttl=0)
        cache_store.set("spam_detective_user_2_def", "fresh")

        response = client.post("/cache/cleanup")

        assert response.status_code == 200
        body = response.json()
        assert body["affected"] == 1
        assert body["stats"] == {"total_cached": 1, "expired": 0, "active": 1}

    def test_cache_warmup(self, client, make_user):
        make_user()
        make_user(display_name="")
        make_user(display_name="", roles=["administrator"])

        first = client.post("/cache/warmup")
        assert first.status_code == 200
        assert first.json()["affected"] == 2
        assert first.json()["stats"]["active"] == 2

        assert client.post("/cache/warmup", params={"quick_scan": False}).json()["affected"] == 0

    def test_system(self, client):
        body = client.get("/system").json()
        assert body["domains"]["suspicious_tlds"] == 42
        assert "administrator" in body["protected_roles"]

    def test_metrics(self, client, make_user):
        make_user(display_name="")
        client.post("/analyze", json={})
        assert client.get("/metrics").json()["counters"]["analysis.total"] == 1


class TestRegistrationIPEndpoint:
    def test_store_explicit_ip(self, client, repository, make_user):
        account = make_user()
        response = client.put(f"/users/{account.id}/registration-ip", json={"ip": "203.0.113.5"})
        assert response.status_code == 200
        assert response.json() == {"user_id": account.id, "ip": "203.0.113.5", "stored": True}
        assert repository.get_account(account.id).registration_ip == "203.0.113.5"

    def test_falls_back_to_forwarded_header(self, client, repository, make_user):
        account = make_user()
        response = client.put(
            f"/users/{account.id}/registration-ip",
            json={},
            headers={"X-Forwarded-For": "198.51.100.2, 10.0.0.1"},
        )
        assert response.json()["stored"] is True
        assert repository.get_account(account.id).registration_ip == "198.51.100.2"

    def test_not_stored_when_tracking_off(self, client, repository, make_user):
        account = make_user()
        client.put("/settings", json={"track_registration_ip": False})

        response = client.put(f"/users/{account.id}/registration-ip", json={"ip": "203.0.113.5"})

        assert response.status_code == 200
        assert response.json()["stored"] is False
        assert repository.get_account(account.id).registration_ip is None

    def test_loopback_not_stored(self, client, make_user):
        account = make_user()
        response = client.put(f"/users/{account.id}/registration-ip", json={"ip": "127.0.0.1"})
        assert response.json()["stored"] is False

    def test_invalid_ip(self, client, make_user):
        account = make_user()
        response = client.put(f"/users/{account.id}/registration-ip", json={"ip": "999.1.1.1"})
        assert response.status_code == 400

    def test_unknown_user(self, client):
        response = client.put("/users/9999/registration-ip", json={"ip": "203.0.113.5"})
        assert response.status_code == 404
