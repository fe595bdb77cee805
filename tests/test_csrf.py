"""Tests for the CSRF token lifecycle and the csrf middleware."""

import pytest

from portcullis.app import App
from portcullis.config import AppConfig, SecurityConfig
from portcullis.middleware.csrf import csrf_field, get_csrf_token
from portcullis.security.service import SecurityService
from portcullis.security.sessions import Session
from portcullis.testing import TestClient


def _session(sid: str = "abc") -> Session:
    return Session(id=sid, created_at=0.0, rotated_at=0.0)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TestIssueToken:
    def test_token_is_hex_sha256(self, clock, sink) -> None:
        security = SecurityService(clock=clock, sink=sink)
        token = security.issue_csrf_token(_session())
        assert len(token) == 64
        int(token, 16)

    def test_stored_on_session(self, clock, sink) -> None:
        security = SecurityService(clock=clock, sink=sink)
        session = _session()
        token = security.issue_csrf_token(session)
        assert session.csrf_token == token
        assert session.csrf_issued_at == clock.now

    def test_reissue_overwrites(self, clock, sink) -> None:
        security = SecurityService(clock=clock, sink=sink)
        session = _session()
        first = security.issue_csrf_token(session)
        clock.advance(1)
        second = security.issue_csrf_token(session)
        assert first != second
        assert security.validate_csrf_token(session, first) is False
        assert security.validate_csrf_token(session, second) is True

    def test_deterministic_for_same_secret_session_and_time(self, clock, sink) -> None:
        config = SecurityConfig(csrf_secret="fixed")
        a = SecurityService(config, clock=clock, sink=sink)
        b = SecurityService(config, clock=clock, sink=sink)
        assert a.issue_csrf_token(_session()) == b.issue_csrf_token(_session())

    def test_generated_secret_differs_per_service(self, clock, sink) -> None:
        a = SecurityService(clock=clock, sink=sink)
        b = SecurityService(clock=clock, sink=sink)
        assert a.issue_csrf_token(_session()) != b.issue_csrf_token(_session())


class TestValidateToken:
    def test_round_trip(self, clock, sink) -> None:
        security = SecurityService(clock=clock, sink=sink)
        session = _session()
        token = security.issue_csrf_token(session)
        assert security.validate_csrf_token(session, token) is True

    def test_validation_does_not_consume(self, clock, sink) -> None:
        security = SecurityService(clock=clock, sink=sink)
        session = _session()
        token = security.issue_csrf_token(session)
        assert security.validate_csrf_token(session, token) is True
        assert security.validate_csrf_token(session, token) is True

    def test_mismatch(self, clock, sink) -> None:
        security = SecurityService(clock=clock, sink=sink)
        session = _session()
        security.issue_csrf_token(session)
        assert security.validate_csrf_token(session, "0" * 64) is False

    @pytest.mark.parametrize("submitted", [None, ""])
    def test_empty_submission(self, clock, sink, submitted) -> None:
        security = SecurityService(clock=clock, sink=sink)
        session = _session()
        security.issue_csrf_token(session)
        assert security.validate_csrf_token(session, submitted) is False

    def test_no_token_issued(self, clock, sink) -> None:
        security = SecurityService(clock=clock, sink=sink)
        assert security.validate_csrf_token(_session(), "anything") is False

    def test_no_session(self, clock, sink) -> None:
        security = SecurityService(clock=clock, sink=sink)
        assert security.validate_csrf_token(None, "anything") is False

    def test_valid_at_exactly_ttl(self, clock, sink) -> None:
        security = SecurityService(SecurityConfig(csrf_ttl=3600), clock=clock, sink=sink)
        session = _session()
        token = security.issue_csrf_token(session)
        clock.advance(3600)
        assert security.validate_csrf_token(session, token) is True

    def test_expired_after_ttl_and_cleared(self, clock, sink) -> None:
        security = SecurityService(SecurityConfig(csrf_ttl=3600), clock=clock, sink=sink)
        session = _session()
        token = security.issue_csrf_token(session)
        clock.advance(3601)
        assert security.validate_csrf_token(session, token) is False
        assert session.csrf_token is None
        assert session.csrf_issued_at is None

    def test_invalidate(self, clock, sink) -> None:
        security = SecurityService(clock=clock, sink=sink)
        session = _session()
        token = security.issue_csrf_token(session)
        security.invalidate_csrf_token(session)
        assert security.validate_csrf_token(session, token) is False

    def test_csrf_token_reuses_live_token(self, clock, sink) -> None:
        security = SecurityService(clock=clock, sink=sink)
        session = _session()
        token = security.csrf_token(session)
        clock.advance(10)
        assert security.csrf_token(session) == token

    def test_csrf_token_replaces_expired_token(self, clock, sink) -> None:
        security = SecurityService(SecurityConfig(csrf_ttl=60), clock=clock, sink=sink)
        session = _session()
        token = security.csrf_token(session)
        clock.advance(61)
        assert security.csrf_token(session) != token


class TestGetCsrfToken:
    def test_raises_outside_request(self) -> None:
        with pytest.raises(LookupError, match="No active session"):
            get_csrf_token()


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _make_app(clock, sink) -> App:
    app = App(AppConfig(secret_key="test-secret"), clock=clock, security_sink=sink)

    def form_page() -> str:
        return f"token={get_csrf_token()}"

    def submit(request) -> str:
        return f"ok={request.form().get('data', '')}"

    def webhook() -> dict:
        return {"received": True}

    def routes(r) -> None:
        r.get("/form", form_page)
        r.post("/submit", submit)
        r.post("/api/webhook", webhook)

    app.group({"middleware": ["csrf"]}, routes)
    return app


class TestCsrfMiddleware:
    def test_get_issues_token(self, clock, sink) -> None:
        with TestClient(_make_app(clock, sink)) as client:
            response = client.get("/form")
            assert response.status == 200
            assert response.text.startswith("token=")
            assert len(response.text) == len("token=") + 64

    def test_post_without_token_rejected(self, clock, sink) -> None:
        with TestClient(_make_app(clock, sink)) as client:
            client.get("/form")
            response = client.post("/submit", data={"data": "x"})
            assert response.status == 403
            assert "csrf.reject" in sink.names

    def test_post_with_form_token(self, clock, sink) -> None:
        with TestClient(_make_app(clock, sink)) as client:
            token = client.get("/form").text.removeprefix("token=")
            response = client.post("/submit", data={"_token": token, "data": "hello"})
            assert response.status == 200
            assert response.text == "ok=hello"

    def test_post_with_header_token(self, clock, sink) -> None:
        with TestClient(_make_app(clock, sink)) as client:
            token = client.get("/form").text.removeprefix("token=")
            response = client.post(
                "/submit", data={"data": "hi"}, headers={"X-CSRF-Token": token}
            )
            assert response.status == 200

    def test_wrong_token_rejected_as_json_for_api_clients(self, clock, sink) -> None:
        with TestClient(_make_app(clock, sink)) as client:
            client.get("/form")
            response = client.post(
                "/submit",
                data={"_token": "wrong"},
                headers={"Accept": "application/json"},
            )
            assert response.status == 403
            body = response.json_body
            assert body["success"] is False
            assert body["error"]["code"] == "CSRF_TOKEN_INVALID"

    def test_expired_token_rejected(self, clock, sink) -> None:
        with TestClient(_make_app(clock, sink)) as client:
            token = client.get("/form").text.removeprefix("token=")
            clock.advance(3601)
            response = client.post("/submit", data={"_token": token})
            assert response.status == 403

    def test_api_with_authorization_header_exempt(self, clock, sink) -> None:
        with TestClient(_make_app(clock, sink)) as client:
            response = client.post("/api/webhook", headers={"Authorization": "Bearer t"})
            assert response.status == 200
            assert response.json_body["data"] == {"received": True}

    def test_api_without_authorization_not_exempt(self, clock, sink) -> None:
        with TestClient(_make_app(clock, sink)) as client:
            response = client.post("/api/webhook")
            assert response.status == 403
            assert response.json_body["error"]["code"] == "CSRF_TOKEN_INVALID"


class TestCsrfField:
    def test_hidden_input(self, clock, sink) -> None:
        app = App(AppConfig(secret_key="test-secret"), clock=clock, security_sink=sink)
        app.get("/form", lambda: str(csrf_field()), middleware="csrf")
        with TestClient(app) as client:
            html = client.get("/form").text
            token = client.session.csrf_token
            assert html == f'<input type="hidden" name="_token" value="{token}">'

    def test_custom_field_name(self, clock, sink) -> None:
        app = App(AppConfig(secret_key="test-secret"), clock=clock, security_sink=sink)
        app.get("/form", lambda: str(csrf_field("csrf")), middleware="csrf")
        with TestClient(app) as client:
            assert 'name="csrf"' in client.get("/form").text
