"""HTTP response with chainable .with_*() transformation API.

Each transformation returns a new Response. Immutable by convention,
built up one transformation at a time.
"""

from __future__ import annotations

import json as json_module
from collections.abc import Mapping
from dataclasses import dataclass, replace
from http import HTTPStatus
from typing import Any

from portcullis.http.cookies import SetCookie

JSON_CONTENT_TYPE = "application/json; charset=utf-8"


@dataclass(frozen=True, slots=True)
class Response:
    """An HTTP response built through immutable transformations.

    Construct with a body, then chain ``.with_*()`` calls to set
    status, headers, and cookies.
    """

    body: str | bytes = ""
    status: int = 200
    content_type: str = "text/html; charset=utf-8"
    headers: tuple[tuple[str, str], ...] = ()
    cookies: tuple[SetCookie, ...] = ()

    @classmethod
    def json(cls, payload: Any, status: int = 200) -> Response:
        """A JSON response."""
        return cls(
            body=json_module.dumps(payload, default=str),
            status=status,
            content_type=JSON_CONTENT_TYPE,
        )

    # -- Chainable transformations --

    def with_status(self, status: int) -> Response:
        """Return a new Response with a different status code."""
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> Response:
        """Return a new Response with an additional header."""
        return replace(self, headers=(*self.headers, (name, value)))

    def with_headers(self, headers: Mapping[str, str] | tuple[tuple[str, str], ...]) -> Response:
        """Return a new Response with additional headers."""
        new = tuple(headers.items()) if isinstance(headers, Mapping) else tuple(headers)
        return replace(self, headers=(*self.headers, *new))

    def with_cookie(self, cookie: SetCookie) -> Response:
        """Return a new Response with an additional Set-Cookie."""
        return replace(self, cookies=(*self.cookies, cookie))

    # -- Accessors --

    def header(self, name: str, default: str | None = None) -> str | None:
        """First value of header *name* (case-insensitive)."""
        name_lower = name.lower()
        for key, value in self.headers:
            if key.lower() == name_lower:
                return value
        return default

    def cookie(self, name: str) -> SetCookie | None:
        """The last Set-Cookie directive for *name*, if any."""
        found = None
        for cookie in self.cookies:
            if cookie.name == name:
                found = cookie
        return found

    @property
    def body_bytes(self) -> bytes:
        """Body as bytes."""
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return self.body

    @property
    def text(self) -> str:
        """Body as string."""
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return self.body

    @property
    def json_body(self) -> Any:
        """Body parsed as JSON."""
        return json_module.loads(self.body_bytes)

    @property
    def status_line(self) -> str:
        """``"404 Not Found"`` style status line for WSGI."""
        try:
            phrase = HTTPStatus(self.status).phrase
        except ValueError:
            phrase = ""
        return f"{self.status} {phrase}".rstrip()

    def wsgi_headers(self) -> list[tuple[str, str]]:
        """All headers including Content-Type and Set-Cookie."""
        out = [("Content-Type", self.content_type), ("Content-Length", str(len(self.body_bytes)))]
        out.extend(self.headers)
        out.extend(("Set-Cookie", c.to_header_value()) for c in self.cookies)
        return out


@dataclass(frozen=True, slots=True)
class Redirect:
    """A redirect response."""

    url: str
    status: int = 302
    headers: tuple[tuple[str, str], ...] = ()
