"""Routing: ordered route table with ``{name}`` path templates.

Routes are registered during setup, scoped by groups that compose a
path prefix and middleware list, and frozen when the app starts.
"""

from portcullis.routing.pattern import CompiledPattern, compile_template, normalize_path
from portcullis.routing.route import Action, Param, Route, RouteMatch
from portcullis.routing.router import GroupFrame, Router

__all__ = [
    "Action",
    "CompiledPattern",
    "GroupFrame",
    "Param",
    "Route",
    "RouteMatch",
    "Router",
    "compile_template",
    "normalize_path",
]
