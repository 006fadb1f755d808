"""Tests for web_server.py — request tracing, error responses and observability routes."""

import pytest

from src.observability.log_buffer import get_log_entries
from src.web_server import AppServer


def _session_for(users):
    """get_session collaborator keyed by the bearer token."""

    def get_session(headers):
        token = (headers.get("Authorization") or "").replace("Bearer ", "")
        return users.get(token)

    return get_session


@pytest.fixture
def server(admin_session):
    member = {"user": {"id": "user_2", "role": "member"}, "session": {"id": "sess_2"}}
    server = AppServer(
        get_session=_session_for({"admin-token": admin_session, "member-token": member}),
        health_checks={"database": lambda: True},
    )
    server.app.config["TESTING"] = True

    @server.app.route("/boom")
    def boom():
        raise RuntimeError("kaboom")

    return server


@pytest.fixture
def client(server, capsys):
    with server.app.test_client() as client:
        yield client


ADMIN = {"Authorization": "Bearer admin-token"}


# ── Request tracing ──────────────────────────────────────────────


class TestRequestTracing:
    def test_echoes_inbound_request_id(self, client):
        resp = client.get("/api/health", headers={"X-Request-ID": "trace-abc"})
        assert resp.headers["X-Request-ID"] == "trace-abc"

    def test_generates_request_id(self, client):
        resp = client.get("/api/health")
        assert len(resp.headers["X-Request-ID"]) == 16

    def test_logs_request_line_with_context(self, client):
        client.get("/api/health", headers={"X-Request-ID": "trace-1", "X-Forwarded-For": "203.0.113.5"})
        entries, total = get_log_entries(search="trace-1")
        assert total == 1
        entry = entries[0]
        assert entry["message"].startswith("GET /api/health 200")
        assert entry["context"]["requestId"] == "trace-1"
        assert entry["context"]["endpoint"] == "/api/health"
        assert entry["context"]["ip"] == "203.0.113.5"
        assert entry["context"]["module"] == "web_server"
        assert entry["meta"]["statusCode"] == 200

    def test_authenticated_request_carries_user(self, client):
        client.get("/api/health", headers={**ADMIN, "X-Request-ID": "trace-2"})
        entries, _ = get_log_entries(search="trace-2")
        assert entries[0]["context"]["userId"] == "user_1"
        assert entries[0]["context"]["sessionId"] == "sess_1"

    def test_client_errors_logged_as_warn(self, client):
        client.get("/does-not-exist", headers={"X-Request-ID": "trace-404"})
        entries, _ = get_log_entries(search="trace-404")
        assert entries[0]["level"] == "warn"


class TestUnhandledRouteErrors:
    def test_returns_json_500_with_request_id(self, client):
        resp = client.get("/boom", headers={"X-Request-ID": "trace-500"})
        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal Server Error", "requestId": "trace-500"}

    def test_error_logged_and_tracked(self, client):
        client.get("/boom")
        messages = [e["message"] for e in get_log_entries(level="error")[0]]
        assert "Unhandled route exception" in messages
        assert "Error tracked" in messages

    def test_http_errors_untouched(self, client):
        assert client.get("/nope").status_code == 404


# ── Health ───────────────────────────────────────────────────────


class TestHealth:
    def test_healthy(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "ok"
        assert data["version"] == "1.0.0"
        assert data["services"] == {"database": {"status": "operational"}}
        assert "memory" not in data

    def test_memory_opt_in(self, client, monkeypatch):
        monkeypatch.setenv("HEALTH_INCLUDE_MEMORY", "true")
        data = client.get("/api/health").get_json()
        assert data["memory"]["maxRss"] > 0

    def test_failing_check_returns_503(self, server, client):
        def broken():
            raise ConnectionError("db unreachable")

        server.app.config["HEALTH_CHECKS"]["cache"] = broken
        resp = client.get("/api/health")
        assert resp.status_code == 503
        data = resp.get_json()
        assert data["status"] == "error"
        assert data["services"]["cache"]["status"] == "outage"


# ── CSP reports ──────────────────────────────────────────────────


class TestCspReport:
    def test_logs_violation(self, client):
        report = {
            "csp-report": {
                "document-uri": "https://app.example.com/",
                "violated-directive": "script-src",
                "blocked-uri": "https://evil.example.com/x.js",
            }
        }
        resp = client.post("/api/csp-report", json=report)
        assert resp.status_code == 204
        entries, _ = get_log_entries(search="CSP Violation")
        assert entries[0]["meta"]["violatedDirective"] == "script-src"
        assert entries[0]["meta"]["blockedUri"] == "https://evil.example.com/x.js"

    def test_malformed_body_still_204(self, client):
        resp = client.post("/api/csp-report", data="not json", content_type="application/csp-report")
        assert resp.status_code == 204
        assert get_log_entries(search="CSP Violation")[1] == 0


# ── Admin logs ───────────────────────────────────────────────────


class TestAdminLogs:
    def test_requires_session(self, client):
        assert client.get("/api/v1/admin/logs").status_code == 401

    def test_requires_admin_role(self, client):
        resp = client.get("/api/v1/admin/logs", headers={"Authorization": "Bearer member-token"})
        assert resp.status_code == 403

    def test_returns_paginated_entries(self, client):
        for _ in range(3):
            client.get("/api/health")
        resp = client.get("/api/v1/admin/logs?limit=2&search=/api/health", headers=ADMIN)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert len(body["data"]) == 2
        assert body["meta"]["page"] == 1
        assert body["meta"]["limit"] == 2
        assert body["meta"]["total"] >= 3
        assert body["meta"]["totalPages"] >= 2

    def test_filters_by_level(self, client):
        client.get("/missing-page")
        body = client.get("/api/v1/admin/logs?level=WARN", headers=ADMIN).get_json()
        assert body["data"]
        assert all(entry["level"] == "warn" for entry in body["data"])

    @pytest.mark.parametrize(
        "query",
        ["level=verbose", "limit=0", "limit=101", "page=0", "page=abc", "search=" + "x" * 201],
    )
    def test_validation(self, client, query):
        resp = client.get(f"/api/v1/admin/logs?{query}", headers=ADMIN)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"


# ── Error handling lifecycle ─────────────────────────────────────


class TestErrorHandlingLifecycle:
    def test_start_and_stop(self, server):
        server.start_error_handling()
        assert server.error_runtime.installed is True
        server.stop_error_handling()
        assert server.error_runtime.installed is False

    def test_stop_without_start(self, server):
        server.stop_error_handling()
        assert server.error_runtime.installed is False
