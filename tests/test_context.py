"""Tests for observability.context — request, user and client-IP context."""

from types import SimpleNamespace

import pytest

from src.observability.context import ContextProvider, get_endpoint_path


def _provider(headers=None, session=None, session_error=None, ids=None):
    def get_session(headers):
        if session_error is not None:
            raise session_error
        return session

    id_iter = iter(ids or ["generated_id_0001", "generated_id_0002"])
    return ContextProvider(
        headers=lambda: headers or {},
        get_session=get_session,
        id_factory=lambda size: next(id_iter),
    )


class TestRequestId:
    def test_uses_inbound_header(self):
        provider = _provider({"x-request-id": "upstream-42"})
        assert provider.get_request_id() == "upstream-42"

    def test_header_lookup_is_case_insensitive(self):
        provider = _provider({"X-Request-ID": "upstream-42"})
        assert provider.get_request_id() == "upstream-42"

    def test_generates_when_missing(self):
        provider = _provider()
        assert provider.get_request_id() == "generated_id_0001"
        assert provider.get_request_id() == "generated_id_0002"

    def test_default_ids_are_16_hex_chars(self):
        provider = ContextProvider(headers=lambda: {})
        request_id = provider.generate_request_id()
        assert len(request_id) == 16
        int(request_id, 16)


class TestRequestContext:
    def test_full_request(self):
        provider = _provider({"x-request-id": "r1", "user-agent": "Mozilla/5.0"})
        req = SimpleNamespace(method="POST", url="https://app.example.com/api/orders")
        assert provider.get_request_context(req) == {
            "requestId": "r1",
            "method": "POST",
            "url": "https://app.example.com/api/orders",
            "userAgent": "Mozilla/5.0",
        }

    def test_missing_parts_omitted(self):
        provider = _provider({"x-request-id": "r1"})
        assert provider.get_request_context() == {"requestId": "r1"}

    def test_broken_header_source(self):
        def headers():
            raise RuntimeError("no request")

        provider = ContextProvider(headers=headers, id_factory=lambda size: "fallback")
        assert provider.get_request_context() == {"requestId": "fallback"}


class TestUserContext:
    def test_authenticated(self, admin_session):
        provider = _provider(session=admin_session)
        assert provider.get_user_context() == {
            "userId": "user_1",
            "sessionId": "sess_1",
            "email": "admin@example.com",
        }

    def test_anonymous(self):
        assert _provider(session=None).get_user_context() == {}

    def test_no_session_source(self):
        assert ContextProvider(headers=lambda: {}).get_user_context() == {}

    def test_session_lookup_failure_is_anonymous(self):
        provider = _provider(session_error=ConnectionError("auth service down"))
        assert provider.get_user_context() == {}
        assert provider.get_session() is None

    def test_object_session(self):
        session = SimpleNamespace(
            user=SimpleNamespace(id="u2", email="u2@example.com"),
            session=SimpleNamespace(id="s2"),
        )
        provider = _provider(session=session)
        assert provider.get_user_context()["userId"] == "u2"

    def test_full_context_merges(self, admin_session):
        provider = _provider({"x-request-id": "r9"}, session=admin_session)
        context = provider.get_full_context(SimpleNamespace(method="GET", url=None))
        assert context["requestId"] == "r9"
        assert context["method"] == "GET"
        assert context["userId"] == "user_1"
        assert "url" not in context


class TestClientIp:
    @pytest.mark.parametrize(
        "headers, expected",
        [
            ({"x-forwarded-for": "203.0.113.7, 10.0.0.1", "x-real-ip": "10.0.0.2"}, "203.0.113.7"),
            ({"x-real-ip": "10.0.0.2", "cf-connecting-ip": "198.51.100.1"}, "10.0.0.2"),
            ({"cf-connecting-ip": "198.51.100.1", "x-client-ip": "10.0.0.3"}, "198.51.100.1"),
            ({"x-client-ip": "10.0.0.3"}, "10.0.0.3"),
            ({"x-cluster-client-ip": "10.0.0.4"}, "10.0.0.4"),
            ({}, None),
        ],
    )
    def test_priority(self, headers, expected):
        assert _provider(headers).get_client_ip() == expected

    def test_empty_header_is_skipped(self):
        assert _provider({"x-forwarded-for": "", "x-real-ip": "10.0.0.2"}).get_client_ip() == "10.0.0.2"


class TestEndpointPath:
    def test_strips_origin_and_query(self):
        assert get_endpoint_path(SimpleNamespace(url="https://a.example.com/api/v1/items?page=2")) == "/api/v1/items"

    def test_root(self):
        assert get_endpoint_path("https://a.example.com") == "/"

    def test_relative_url_returned_as_is(self):
        assert get_endpoint_path("/api/items") == "/api/items"


class TestFlaskIntegration:
    def test_reads_active_request_headers(self):
        from flask import Flask, request

        from src.observability.context import get_context_provider

        app = Flask(__name__)
        with app.test_request_context("/x", headers={"X-Request-ID": "flask-req", "X-Real-IP": "10.1.1.1"}):
            provider = get_context_provider()
            assert provider.get_request_id() == "flask-req"
            assert provider.get_client_ip() == "10.1.1.1"
            assert provider.get_request_context(request)["method"] == "GET"

    def test_app_registered_provider_wins(self):
        from flask import Flask

        from src.observability.context import get_context_provider

        app = Flask(__name__)
        custom = ContextProvider(headers=lambda: {})
        app.extensions["context_provider"] = custom
        with app.app_context():
            assert get_context_provider() is custom
