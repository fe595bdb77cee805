"""Content negotiation: maps return values to Response objects.

isinstance-based dispatch:

- ``Response`` passes through unchanged.
- ``Redirect`` becomes a 302 (or its own status) with ``Location``.
- ``str`` becomes a 200 HTML page.
- anything else becomes the JSON success envelope
  ``{"success": true, "request_id": ..., "data": ...}``.
"""

from typing import Any

from portcullis.context import api_var, get_request_id
from portcullis.http.request import Request
from portcullis.http.response import Redirect, Response


def is_api_request(request: Request, api_prefix: str = "/api/") -> bool:
    """True when the response should use the JSON envelope.

    That is: the path is under *api_prefix*, the ``Accept`` header asks
    for JSON, or the ``api`` middleware marked the request.
    """
    if api_var.get():
        return True
    prefix = api_prefix.rstrip("/")
    if prefix and (request.path == prefix or request.path.startswith(prefix + "/")):
        return True
    return "application/json" in (request.headers.get("accept") or "").lower()


def success_envelope(data: Any) -> dict[str, Any]:
    return {"success": True, "request_id": get_request_id(), "data": data}


def error_envelope(
    code: str, message: str, details: dict[str, Any] | None = None
) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"success": False, "request_id": get_request_id(), "error": error}


def redirect_response(redirect: Redirect) -> Response:
    return Response(body="", status=redirect.status).with_headers(
        (("Location", redirect.url), *redirect.headers)
    )


def negotiate(value: Any) -> Response:
    """Convert a handler or middleware return value to a Response."""
    match value:
        case Response():
            return value
        case Redirect():
            return redirect_response(value)
        case str():
            return Response(body=value)
        case bytes():
            return Response(body=value, content_type="application/octet-stream")
        case _:
            return Response.json(success_envelope(value))
