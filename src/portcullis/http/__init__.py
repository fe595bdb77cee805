"""HTTP primitives: immutable Request and chainable Response."""

from portcullis.http.cookies import SetCookie, parse_cookies
from portcullis.http.headers import Headers
from portcullis.http.params import Params
from portcullis.http.request import Request
from portcullis.http.response import Redirect, Response

__all__ = [
    "Headers",
    "Params",
    "Redirect",
    "Request",
    "Response",
    "SetCookie",
    "parse_cookies",
]
