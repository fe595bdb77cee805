"""Tests for the security headers middleware and its app wiring."""

import pytest

from portcullis.app import App
from portcullis.config import DEFAULT_SECURITY_HEADERS, AppConfig, SecurityConfig
from portcullis.errors import AuthorizationError
from portcullis.http.request import Request
from portcullis.http.response import Response
from portcullis.middleware.security_headers import SecurityHeadersMiddleware
from portcullis.testing import TestClient

JSON = {"Accept": "application/json"}


def _boom():
    raise RuntimeError("boom")


def _make_app(**security) -> App:
    app = App(AppConfig(secret_key="s", security=SecurityConfig(**security)))
    app.get("/", lambda: "home")
    app.get("/api/data", lambda: {"ok": True})
    app.get("/boom", _boom)
    app.get(
        "/embed",
        lambda: Response("widget").with_header("Content-Security-Policy", "frame-ancestors *"),
    )
    return app


class TestMiddleware:
    def test_adds_defaults(self) -> None:
        mw = SecurityHeadersMiddleware()
        response = mw(Request.build("GET", "/"), lambda request: Response("ok"))
        for name, value in DEFAULT_SECURITY_HEADERS.items():
            assert response.header(name) == value

    def test_existing_header_kept(self) -> None:
        mw = SecurityHeadersMiddleware()
        inner = Response("ok").with_header("X-Frame-Options", "SAMEORIGIN")
        response = mw(Request.build("GET", "/"), lambda request: inner)
        assert [v for k, v in response.headers if k == "X-Frame-Options"] == ["SAMEORIGIN"]

    def test_empty_value_suppresses_header(self) -> None:
        mw = SecurityHeadersMiddleware({"X-Frame-Options": "DENY", "Content-Security-Policy": ""})
        response = mw(Request.build("GET", "/"), lambda request: Response("ok"))
        assert response.header("X-Frame-Options") == "DENY"
        assert response.header("Content-Security-Policy") is None


class TestAppWiring:
    @pytest.mark.parametrize(
        ("path", "status"),
        [("/", 200), ("/api/data", 200), ("/nope", 404), ("/boom", 500)],
    )
    def test_every_response_carries_headers(self, path, status) -> None:
        with TestClient(_make_app()) as client:
            response = client.get(path)
            assert response.status == status
            assert response.header("X-Frame-Options") == "DENY"
            assert response.header("X-Content-Type-Options") == "nosniff"
            assert response.header("Referrer-Policy") == "strict-origin-when-cross-origin"
            assert "frame-ancestors 'none'" in response.header("Content-Security-Policy")

    def test_route_can_relax_csp(self) -> None:
        with TestClient(_make_app()) as client:
            response = client.get("/embed")
            csp = [v for k, v in response.headers if k.lower() == "content-security-policy"]
            assert csp == ["frame-ancestors *"]

    def test_configured_map(self) -> None:
        headers = {**DEFAULT_SECURITY_HEADERS, "X-Frame-Options": "SAMEORIGIN"}
        with TestClient(_make_app(headers=headers)) as client:
            assert client.get("/").header("X-Frame-Options") == "SAMEORIGIN"

    def test_global_middleware_rejection_carries_headers(self) -> None:
        app = _make_app()

        def deny(request, next):
            raise AuthorizationError(403, "Forbidden", code="FORBIDDEN")

        app.add_middleware(deny)
        with TestClient(app) as client:
            response = client.get("/", headers=JSON)
            assert response.status == 403
            assert response.header("X-Content-Type-Options") == "nosniff"
            assert response.header("X-Request-ID") is not None
