"""Controller lookup and argument binding for ``Action`` handlers.

A controller is looked up by its class identifier: first in the
registry, then as an import path (``"app.controllers:UserController"``
or ``"app.controllers.UserController"``). A fresh instance is created
for every request.
"""

import importlib
import threading
from collections.abc import Callable, Mapping
from typing import Any

from portcullis.errors import ConfigurationError, HandlerResolutionError
from portcullis.http.request import Request
from portcullis.routing.route import Action, Param, signature_params

type ControllerFactory = Callable[[], Any]


def _import_class(identifier: str) -> Any | None:
    if ":" in identifier:
        module_name, _, attr = identifier.partition(":")
    elif "." in identifier:
        module_name, _, attr = identifier.rpartition(".")
    else:
        return None
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return None
    obj = module
    for part in attr.split("."):
        obj = getattr(obj, part, None)
        if obj is None:
            return None
    return obj


class ControllerRegistry:
    """Maps class identifiers to controller factories.

    Usage::

        controllers = ControllerRegistry()
        controllers.register(UserController)              # as "UserController"
        controllers.register("Admin\\Users", AdminUsers)  # explicit name
    """

    __slots__ = ("_factories", "_lock", "_params")

    def __init__(self) -> None:
        self._factories: dict[str, ControllerFactory] = {}
        self._params: dict[tuple[str, str], tuple[Param, ...]] = {}
        self._lock = threading.Lock()

    def register(self, name_or_cls: str | type, factory: ControllerFactory | None = None) -> None:
        if isinstance(name_or_cls, str):
            if factory is None:
                msg = f"Controller {name_or_cls!r} registered without a class or factory."
                raise ConfigurationError(msg)
            name = name_or_cls
        else:
            name = name_or_cls.__name__
            factory = factory or name_or_cls
        if not callable(factory):
            msg = f"Controller factory for {name!r} must be callable."
            raise ConfigurationError(msg)
        self._factories[name] = factory

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def resolve(self, identifier: str) -> ControllerFactory:
        """The factory for *identifier*; raises ``HandlerResolutionError``."""
        factory = self._factories.get(identifier)
        if factory is None:
            factory = _import_class(identifier)
        if factory is None or not callable(factory):
            msg = f"Handler class not found: {identifier}"
            raise HandlerResolutionError(msg)
        return factory

    def params_for(self, action: Action, method: Callable[..., Any]) -> tuple[Param, ...]:
        """The action's parameter descriptor, derived once per class and method."""
        if action.params is not None:
            return action.params
        key = (action.controller, action.method)
        params = self._params.get(key)
        if params is None:
            params = signature_params(method)
            with self._lock:
                self._params.setdefault(key, params)
        return params

    def call(self, action: Action, request: Request, path_params: Mapping[str, str]) -> Any:
        """Instantiate the controller and invoke the action's method.

        Each declared parameter receives the captured path value, else its
        declared default, else ``None``. A parameter named ``request``
        receives the current request.
        """
        instance = self.resolve(action.controller)()
        method = getattr(instance, action.method, None)
        if method is None or not callable(method):
            msg = f"Handler method not found: {action}"
            raise HandlerResolutionError(msg)

        args = []
        for param in self.params_for(action, method):
            if param.name in path_params:
                args.append(path_params[param.name])
            elif param.name == "request":
                args.append(request)
            elif param.has_default:
                args.append(param.default)
            else:
                args.append(None)
        return method(*args)
