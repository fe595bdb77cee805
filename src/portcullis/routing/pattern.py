"""Path template compilation.

Templates use ``{name}`` placeholders. Each placeholder captures one or
more non-slash characters; everything else is matched literally.

Examples::

    compile_template("/users/{id}").match("/users/42")    -> ("42",)
    compile_template("/files/v1.0/{name}").param_names     -> ("name",)
"""

import re
from dataclasses import dataclass

from portcullis.errors import ConfigurationError

_PLACEHOLDER = re.compile(r"\{([^{}]*)\}")
_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def normalize_path(path: str) -> str:
    """Collapse an empty path to ``/`` and strip one trailing slash.

    Root stays ``/``. A missing leading slash is added.
    """
    if not path:
        return "/"
    if not path.startswith("/"):
        path = f"/{path}"
    if path != "/" and path.endswith("/"):
        path = path[:-1]
    return path or "/"


@dataclass(frozen=True, slots=True)
class CompiledPattern:
    """A compiled path template.

    ``param_names`` lists placeholder names in order of appearance.
    """

    template: str
    regex: re.Pattern[str]
    param_names: tuple[str, ...]

    def match(self, path: str) -> tuple[str, ...] | None:
        """Return captured values in template order, or ``None``."""
        m = self.regex.fullmatch(path)
        if m is None:
            return None
        return m.groups()


def compile_template(template: str) -> CompiledPattern:
    """Compile a path template into an anchored regex.

    Raises ``ConfigurationError`` for malformed or duplicate placeholders.
    """
    if not template:
        template = "/"

    if "<" in template and ">" in template:
        msg = (
            f"Route path {template!r} uses <param> syntax. "
            "Use {param} placeholders instead."
        )
        raise ConfigurationError(msg)

    parts: list[str] = []
    names: list[str] = []
    pos = 0
    for m in _PLACEHOLDER.finditer(template):
        literal = template[pos : m.start()]
        _reject_stray_braces(template, literal)
        parts.append(re.escape(literal))

        name = m.group(1).strip()
        if not _NAME.match(name):
            msg = f"Invalid placeholder {m.group(0)!r} in route path {template!r}."
            raise ConfigurationError(msg)
        if name in names:
            msg = f"Duplicate placeholder {{{name}}} in route path {template!r}."
            raise ConfigurationError(msg)
        names.append(name)
        parts.append("([^/]+)")
        pos = m.end()

    tail = template[pos:]
    _reject_stray_braces(template, tail)
    parts.append(re.escape(tail))

    return CompiledPattern(
        template=template,
        regex=re.compile("".join(parts)),
        param_names=tuple(names),
    )


def _reject_stray_braces(template: str, literal: str) -> None:
    if "{" in literal or "}" in literal:
        msg = f"Unbalanced brace in route path {template!r}."
        raise ConfigurationError(msg)
