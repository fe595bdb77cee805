"""Immutable HTTP request.

Frozen metadata plus the already-received body. Dispatch is
synchronous, so the body is plain bytes rather than a stream.
"""

from __future__ import annotations

import json as json_module
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from portcullis.http.cookies import parse_cookies
from portcullis.http.headers import Headers
from portcullis.http.params import Params


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Cookies are parsed once at creation and stored as a frozen field.
    ``path_params`` is filled in by the dispatcher after routing.
    """

    method: str
    path: str
    headers: Headers
    query: Params
    client: tuple[str, int] | None
    cookies: Mapping[str, str]
    body: bytes = b""
    path_params: dict[str, str] = field(default_factory=dict)

    # Mutable cache for parsed form/json (the dict itself is mutable even
    # though the field reference is frozen)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    # -- Computed properties --

    @property
    def content_type(self) -> str | None:
        """The Content-Type header value."""
        return self.headers.get("content-type")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "") or ""

    @property
    def url(self) -> str:
        """Path plus query string."""
        qs = self._cache.get("_query_string", "")
        if qs:
            return f"{self.path}?{qs}"
        return self.path

    @property
    def is_unsafe(self) -> bool:
        """True for state-changing methods."""
        return self.method in ("POST", "PUT", "PATCH", "DELETE")

    # -- Body access --

    def form(self) -> Params:
        """Parse an ``application/x-www-form-urlencoded`` body.

        Any other content type yields empty params.
        """
        if "_form" not in self._cache:
            ct = (self.content_type or "").lower()
            if "application/x-www-form-urlencoded" in ct:
                self._cache["_form"] = Params(self.body)
            else:
                self._cache["_form"] = Params()
        return self._cache["_form"]

    def json(self) -> Any:
        """Parse the body as JSON."""
        if "_json" not in self._cache:
            self._cache["_json"] = json_module.loads(self.body or b"null")
        return self._cache["_json"]

    def text(self) -> str:
        """The body as UTF-8 text."""
        return self.body.decode("utf-8")

    def with_path_params(self, path_params: dict[str, str]) -> Request:
        """Return a copy carrying *path_params*; the parse cache is shared."""
        return replace(self, path_params=path_params, _cache=self._cache)

    # -- Factories --

    @classmethod
    def build(
        cls,
        method: str,
        path: str,
        headers: Mapping[str, str] | Headers | None = None,
        *,
        body: bytes = b"",
        query: str = "",
        client: tuple[str, int] | None = None,
    ) -> Request:
        """Create a Request from plain values."""
        if "?" in path and not query:
            path, _, query = path.partition("?")
        hdrs = headers if isinstance(headers, Headers) else Headers(headers or {})
        request = cls(
            method=method.upper(),
            path=path or "/",
            headers=hdrs,
            query=Params(query),
            client=client,
            cookies=parse_cookies(hdrs.get("cookie")),
            body=body,
        )
        if query:
            request._cache["_query_string"] = query
        return request

    @classmethod
    def from_wsgi(cls, environ: Mapping[str, Any]) -> Request:
        """Create a Request from a WSGI environ."""
        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        stream = environ.get("wsgi.input")
        body = stream.read(length) if stream is not None and length > 0 else b""

        addr = environ.get("REMOTE_ADDR")
        port = environ.get("REMOTE_PORT") or 0
        client = (str(addr), int(port)) if addr else None

        return cls.build(
            environ.get("REQUEST_METHOD", "GET"),
            environ.get("PATH_INFO", "/") or "/",
            Headers.from_environ(environ),
            body=body,
            query=environ.get("QUERY_STRING", ""),
            client=client,
        )
