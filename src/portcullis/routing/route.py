"""Route, Action, Param and RouteMatch frozen dataclasses."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from portcullis.errors import ConfigurationError
from portcullis.routing.pattern import CompiledPattern

METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH")


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()
"""Sentinel for a parameter with no declared default."""


@dataclass(frozen=True, slots=True)
class Param:
    """A declared handler parameter: name plus optional default."""

    name: str
    default: Any = MISSING

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING


def signature_params(func: Callable[..., Any]) -> tuple[Param, ...]:
    """Derive a parameter descriptor from a callable's signature.

    ``self`` is skipped for bound methods by ``inspect.signature`` itself.
    Variadic parameters are ignored.
    """
    params: list[Param] = []
    for p in inspect.signature(func).parameters.values():
        if p.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        default = MISSING if p.default is inspect.Parameter.empty else p.default
        params.append(Param(p.name, default))
    return tuple(params)


@dataclass(frozen=True, slots=True)
class Action:
    """A "class identifier + method name" handler reference.

    ``params`` is the explicit binding descriptor. When left ``None`` it
    is derived from the method signature the first time the action runs.

    Usage::

        Action("UserController", "show")
        Action.parse("UserController@show")
        Action("ReportController", "index", params=(Param("page", 1),))
    """

    controller: str
    method: str
    params: tuple[Param, ...] | None = None

    @classmethod
    def parse(cls, value: str) -> Action:
        """Parse ``"Controller@method"``."""
        controller, sep, method = value.partition("@")
        if not sep or not controller or not method:
            msg = f"Invalid route action {value!r}; expected 'Controller@method'."
            raise ConfigurationError(msg)
        return cls(controller.strip(), method.strip())

    def __str__(self) -> str:
        return f"{self.controller}@{self.method}"


type Handler = Callable[..., Any] | Action


@dataclass(frozen=True, slots=True)
class Route:
    """A frozen route definition.

    Created at registration with its group prefix and middleware already
    applied. Never mutated afterwards.
    """

    method: str
    path: str
    handler: Handler
    pattern: CompiledPattern = field(repr=False, compare=False)
    name: str | None = None
    middleware: tuple[str, ...] = ()

    @property
    def param_names(self) -> tuple[str, ...]:
        return self.pattern.param_names


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match.

    ``path_params`` preserves template order.
    """

    route: Route
    path_params: dict[str, str]
