"""Request-id middleware.

Reuses an inbound correlation id when a proxy or client supplied one,
otherwise generates ``req_<24 hex>``. The id is available via
``portcullis.context.get_request_id()``, appears in every JSON envelope,
and is echoed as ``X-Request-ID``.
"""

import re

from portcullis.context import request_id_var
from portcullis.http.request import Request
from portcullis.http.response import Response
from portcullis.middleware.protocol import Next
from portcullis.security.service import generate_request_id

INBOUND_HEADERS: tuple[str, ...] = ("X-Request-ID", "X-Correlation-ID", "X-Trace-ID")

# Inbound ids are echoed back in a header; keep them short and printable.
_VALID_ID = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def inbound_request_id(request: Request) -> str | None:
    for header in INBOUND_HEADERS:
        value = (request.headers.get(header) or "").strip()
        if value and _VALID_ID.match(value):
            return value
    return None


def request_id_middleware(request: Request, next: Next, *args: str) -> Response:
    request_id = inbound_request_id(request) or generate_request_id()
    token = request_id_var.set(request_id)
    try:
        response = next(request)
    finally:
        request_id_var.reset(token)
    if response.header("X-Request-ID") is None:
        response = response.with_header("X-Request-ID", request_id)
    return response
