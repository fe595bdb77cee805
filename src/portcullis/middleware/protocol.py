"""Middleware protocol and Next type alias.

A middleware is any callable matching::

    def my_mw(request: Request, next: Next, *args: str) -> Response: ...

No base class required. ``args`` are the values after the colon of the
identifier a route names it by: ``"role:admin,editor"`` calls the
``role`` middleware with ``("admin", "editor")``.
"""

from collections.abc import Callable
from typing import Protocol

from portcullis.http.request import Request
from portcullis.http.response import Response

# The rest of the pipeline
type Next = Callable[[Request], Response]


class Middleware(Protocol):
    """Protocol for portcullis middleware.

    Accepts both functions and callable objects::

        # Function middleware
        def timing(request: Request, next: Next) -> Response:
            start = time.monotonic()
            response = next(request)
            return response.with_header("X-Time", f"{time.monotonic() - start:.3f}")

        # Class middleware with arguments
        class Tagged:
            def __call__(self, request: Request, next: Next, *tags: str) -> Response:
                ...
    """

    def __call__(self, request: Request, next: Next, *args: str) -> Response: ...
