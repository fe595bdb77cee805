"""Error pipeline: turns exceptions into responses.

API requests get the JSON error envelope; browsers get a small HTML page
rendered with kida. Exception messages of unexpected failures only ever
reach the client when ``debug`` is on.
"""

import logging
from typing import Any

from kida import Environment

from portcullis.errors import HandlerExecutionError, HTTPError
from portcullis.http.request import Request
from portcullis.http.response import Response
from portcullis.server.negotiation import error_envelope

logger = logging.getLogger("portcullis.server")

ERROR_PAGE = """\
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{{ status }} {{ title }}</title>
</head>
<body>
  <main class="error" data-status="{{ status }}">
    <h1>{{ status }} {{ title }}</h1>
    <p>{{ message }}</p>
    {% if request_id %}<p class="request-id">Request ID: <code>{{ request_id }}</code></p>{% end %}
    {% if trace %}<pre class="trace">{{ trace }}</pre>{% end %}
  </main>
</body>
</html>
"""

_TITLES = {
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    422: "Unprocessable Content",
    429: "Too Many Requests",
    500: "Internal Server Error",
}

_env = Environment(autoescape=True)
_page = _env.from_string(ERROR_PAGE)


def render_error_page(
    status: int,
    message: str,
    *,
    request_id: str | None = None,
    trace: str | None = None,
) -> str:
    """Render the HTML error page."""
    context: dict[str, Any] = {
        "status": status,
        "title": _TITLES.get(status, "Error"),
        "message": message,
        "request_id": request_id,
        "trace": trace,
    }
    return _page.render(context)


def handle_http_error(
    exc: HTTPError,
    request: Request,
    *,
    api: bool,
    request_id: str | None,
) -> Response:
    """Map an ``HTTPError`` to its own status."""
    logger.debug("%d %s %s: %s", exc.status, request.method, request.path, exc.detail)
    message = exc.detail or _TITLES.get(exc.status, "Error")
    if api:
        response = Response.json(error_envelope(exc.code, message, exc.details), status=exc.status)
    else:
        body = render_error_page(exc.status, message, request_id=request_id)
        response = Response(body=body, status=exc.status)
    return response.with_headers(exc.headers)


def handle_internal_error(
    exc: BaseException,
    request: Request,
    *,
    api: bool,
    debug: bool,
    request_id: str | None,
) -> Response:
    """Map an unexpected exception to a 500. Always logged."""
    original = exc.original if isinstance(exc, HandlerExecutionError) else exc
    logger.error(
        "500 %s %s [%s]",
        request.method,
        request.path,
        request_id,
        exc_info=(type(original), original, original.__traceback__),
    )

    message = str(original) if debug else "Internal server error"
    if api:
        details = {"exception": type(original).__name__} if debug else None
        payload = error_envelope("INTERNAL_SERVER_ERROR", message, details)
        return Response.json(payload, status=500)

    trace = None
    if debug:
        import traceback

        trace = "".join(traceback.format_exception(original))
    body = render_error_page(500, message, request_id=request_id, trace=trace)
    return Response(body=body, status=500)
