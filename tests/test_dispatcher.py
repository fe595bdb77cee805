"""Tests for dispatch: routing misses, handler binding, negotiation and the error pipeline."""

import logging

import pytest

from portcullis.app import App
from portcullis.config import AppConfig
from portcullis.errors import AuthorizationError, ValidationError
from portcullis.http.response import Redirect, Response
from portcullis.routing.route import Action, Param
from portcullis.testing import TestClient

JSON = {"Accept": "application/json"}


class UserController:
    instances = 0

    def __init__(self) -> None:
        type(self).instances += 1

    def show(self, id):
        return {"id": id}

    def partial(self, id, extra):
        return {"id": id, "extra": extra}

    def store(self, request):
        return {"name": request.form().get("name")}


class ReportController:
    def index(self, page=1, q=None):
        return {"page": page, "q": q}

    def section(self, slug, limit):
        return {"slug": slug, "limit": limit}


class ImportedController:
    def ping(self):
        return "pong"


def _make_app(*, debug: bool = False) -> App:
    app = App(AppConfig(secret_key="test-secret", debug=debug))
    app.controller(UserController)
    app.controller(ReportController)
    app.get("/users/{id}", "UserController@show")
    app.get("/users/{id}/partial", "UserController@partial")
    app.post("/users", "UserController@store")
    app.get("/reports", "ReportController@index")
    app.get(
        "/reports/{slug}",
        Action("ReportController", "section", params=(Param("slug"), Param("limit", 10))),
    )
    app.get("/missing-class", "MissingController@index")
    app.get("/missing-method", "UserController@nope")
    app.get("/imported", f"{__name__}:ImportedController@ping")
    return app


# ---------------------------------------------------------------------------
# Routing misses
# ---------------------------------------------------------------------------


class TestNotFound:
    def test_api_client_gets_envelope(self) -> None:
        with TestClient(_make_app()) as client:
            response = client.get("/api/nope")
            assert response.status == 404
            body = response.json_body
            assert body["success"] is False
            assert body["error"]["code"] == "ROUTE_NOT_FOUND"
            assert body["error"]["message"] == "Route not found: GET /api/nope"
            assert body["request_id"] == response.header("X-Request-ID")

    def test_browser_gets_html(self) -> None:
        with TestClient(_make_app()) as client:
            response = client.get("/nope")
            assert response.status == 404
            assert response.content_type.startswith("text/html")
            assert "404 Not Found" in response.text
            assert "Route not found: GET /nope" in response.text

    def test_method_mismatch_is_404(self) -> None:
        with TestClient(_make_app()) as client:
            assert client.delete("/users/1").status == 404

    def test_404_logged_at_debug(self, caplog) -> None:
        with TestClient(_make_app()) as client, caplog.at_level("DEBUG", logger="portcullis"):
            client.post("/reports")
        assert any("No POST route for /reports" in r.getMessage() for r in caplog.records)


# ---------------------------------------------------------------------------
# Controller binding
# ---------------------------------------------------------------------------


class TestControllerBinding:
    def test_path_param_bound_by_name(self) -> None:
        with TestClient(_make_app()) as client:
            response = client.get("/users/42")
            assert response.status == 200
            assert response.json_body["data"] == {"id": "42"}

    def test_trailing_slash(self) -> None:
        with TestClient(_make_app()) as client:
            assert client.get("/users/42/").json_body["data"] == {"id": "42"}

    def test_missing_param_without_default_is_none(self) -> None:
        with TestClient(_make_app()) as client:
            data = client.get("/users/42/partial").json_body["data"]
            assert data == {"id": "42", "extra": None}

    def test_declared_defaults(self) -> None:
        with TestClient(_make_app()) as client:
            assert client.get("/reports").json_body["data"] == {"page": 1, "q": None}

    def test_explicit_action_params(self) -> None:
        with TestClient(_make_app()) as client:
            data = client.get("/reports/sales").json_body["data"]
            assert data == {"slug": "sales", "limit": 10}

    def test_request_param_injected(self) -> None:
        with TestClient(_make_app()) as client:
            response = client.post("/users", data={"name": "Ada"})
            assert response.json_body["data"] == {"name": "Ada"}

    def test_fresh_instance_per_request(self) -> None:
        with TestClient(_make_app()) as client:
            before = UserController.instances
            client.get("/users/1")
            client.get("/users/2")
            assert UserController.instances == before + 2

    def test_import_path_controller(self) -> None:
        with TestClient(_make_app()) as client:
            response = client.get("/imported")
            assert response.status == 200
            assert response.text == "pong"


class TestResolutionFailures:
    @pytest.mark.parametrize(
        ("path", "message"),
        [
            ("/missing-class", "Handler class not found: MissingController"),
            ("/missing-method", "Handler method not found: UserController@nope"),
        ],
    )
    def test_debug_shows_message(self, path, message) -> None:
        with TestClient(_make_app(debug=True)) as client:
            response = client.get(path, headers=JSON)
            assert response.status == 500
            error = response.json_body["error"]
            assert error["code"] == "INTERNAL_SERVER_ERROR"
            assert error["message"] == message
            assert error["details"] == {"exception": "HandlerResolutionError"}

    def test_production_hides_message(self) -> None:
        with TestClient(_make_app()) as client:
            response = client.get("/missing-class", headers=JSON)
            assert response.status == 500
            error = response.json_body["error"]
            assert error["message"] == "Internal server error"
            assert "details" not in error


# ---------------------------------------------------------------------------
# Function handlers and negotiation
# ---------------------------------------------------------------------------


class TestFunctionHandlers:
    def test_path_values_positional(self) -> None:
        app = App(AppConfig(secret_key="s"))
        app.get("/posts/{slug}/comments/{cid}", lambda slug, cid: f"{slug}:{cid}")
        with TestClient(app) as client:
            assert client.get("/posts/intro/comments/7").text == "intro:7"

    def test_request_keyword(self) -> None:
        app = App(AppConfig(secret_key="s"))

        def search(request) -> dict:
            return {"q": request.query.get("q")}

        app.get("/search", search)
        with TestClient(app) as client:
            response = client.get("/search", query={"q": "portcullis"})
            assert response.json_body["data"] == {"q": "portcullis"}

    def test_request_after_path_values(self) -> None:
        app = App(AppConfig(secret_key="s"))

        def show(id, request) -> str:
            return f"{id} {request.method}"

        app.get("/items/{id}", show)
        with TestClient(app) as client:
            assert client.get("/items/3").text == "3 GET"


class TestNegotiation:
    def _client(self, handler) -> TestClient:
        app = App(AppConfig(secret_key="s"))
        app.get("/x", handler)
        return TestClient(app)

    def test_str_is_html(self) -> None:
        with self._client(lambda: "<h1>hi</h1>") as client:
            response = client.get("/x")
            assert response.content_type == "text/html; charset=utf-8"
            assert response.text == "<h1>hi</h1>"

    def test_dict_is_envelope(self) -> None:
        with self._client(lambda: {"a": 1}) as client:
            response = client.get("/x")
            assert response.content_type.startswith("application/json")
            body = response.json_body
            assert body["success"] is True
            assert body["data"] == {"a": 1}
            assert body["request_id"].startswith("req_")

    def test_none_is_envelope(self) -> None:
        with self._client(lambda: None) as client:
            assert client.get("/x").json_body["data"] is None

    def test_bytes(self) -> None:
        with self._client(lambda: b"\x00\x01") as client:
            response = client.get("/x")
            assert response.content_type == "application/octet-stream"
            assert response.body_bytes == b"\x00\x01"

    def test_redirect(self) -> None:
        with self._client(lambda: Redirect("/dashboard")) as client:
            response = client.get("/x")
            assert response.status == 302
            assert response.header("Location") == "/dashboard"

    def test_response_passthrough(self) -> None:
        with self._client(lambda: Response("created").with_status(201)) as client:
            response = client.get("/x")
            assert response.status == 201
            assert response.text == "created"


# ---------------------------------------------------------------------------
# Error pipeline
# ---------------------------------------------------------------------------


def _boom():
    raise KeyError("secret-detail")


def _invalid():
    raise ValidationError(details={"email": ["The email field is required."]})


class TestErrorPipeline:
    def _app(self, *, debug: bool = False) -> App:
        app = App(AppConfig(secret_key="s", debug=debug))
        app.get("/boom", _boom)
        app.post("/users", _invalid)
        return app

    def test_unexpected_exception_is_500(self) -> None:
        with TestClient(self._app()) as client:
            response = client.get("/boom")
            assert response.status == 500
            assert "Internal server error" in response.text
            assert "secret-detail" not in response.text

    def test_unexpected_exception_logged(self, caplog) -> None:
        with TestClient(self._app()) as client, caplog.at_level(
            logging.ERROR, logger="portcullis.server"
        ):
            client.get("/boom")
        records = [r for r in caplog.records if r.name == "portcullis.server"]
        assert any(r.getMessage().startswith("500 GET /boom") for r in records)
        assert any(r.exc_info and r.exc_info[0] is KeyError for r in records)

    def test_debug_page_shows_trace(self) -> None:
        with TestClient(self._app(debug=True)) as client:
            response = client.get("/boom")
            assert response.status == 500
            assert "KeyError" in response.text
            assert 'class="trace"' in response.text

    def test_validation_error(self) -> None:
        with TestClient(self._app()) as client:
            response = client.post("/users", headers=JSON)
            assert response.status == 422
            error = response.json_body["error"]
            assert error["code"] == "VALIDATION_FAILED"
            assert error["message"] == "The given data was invalid."
            assert error["details"] == {"email": ["The email field is required."]}

    def test_failing_global_middleware_is_contained(self) -> None:
        app = self._app()

        def broken(request, next):
            raise RuntimeError("middleware bug")

        app.add_middleware(broken)
        with TestClient(app) as client:
            response = client.get("/boom", headers=JSON)
            assert response.status == 500
            assert response.json_body["error"]["code"] == "INTERNAL_SERVER_ERROR"

    def test_global_middleware_http_error_keeps_status(self, caplog) -> None:
        app = self._app()

        def allow_list(request, next):
            raise AuthorizationError(403, "Address not allowed", code="IP_NOT_ALLOWED")

        app.add_middleware(allow_list)
        with TestClient(app) as client, caplog.at_level(logging.ERROR, logger="portcullis.server"):
            response = client.get("/boom", headers=JSON)
            assert response.status == 403
            error = response.json_body["error"]
            assert error["code"] == "IP_NOT_ALLOWED"
            assert error["message"] == "Address not allowed"
            assert client.get("/boom").status == 403
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]
