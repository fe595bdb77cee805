"""Cookie parsing and Set-Cookie serialization.

The read side feeds ``Request.cookies``; the write side is attached to
responses by the session middleware.
"""

from dataclasses import dataclass
from email.utils import formatdate


def parse_cookies(header: str | None) -> dict[str, str]:
    """Parse a ``Cookie`` header into a name -> value dict.

    Quoted values are unquoted. The first occurrence of a name wins,
    matching how browsers order more specific cookies first.
    """
    if not header:
        return {}
    cookies: dict[str, str] = {}
    for pair in header.split(";"):
        name, sep, value = pair.strip().partition("=")
        if not sep or not name:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        cookies.setdefault(name.strip(), value)
    return cookies


@dataclass(frozen=True, slots=True)
class SetCookie:
    """A ``Set-Cookie`` directive.

    Defaults are the hardened session-cookie flags: HttpOnly, Secure,
    SameSite=Strict.
    """

    name: str
    value: str
    max_age: int | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = True
    httponly: bool = True
    samesite: str | None = "Strict"

    @classmethod
    def expired(cls, name: str, *, path: str = "/", domain: str | None = None) -> "SetCookie":
        """A directive telling the browser to drop *name*."""
        return cls(name=name, value="", max_age=0, path=path, domain=domain)

    def to_header_value(self) -> str:
        """Serialize to a ``Set-Cookie`` header value."""
        parts = [f"{self.name}={self.value}"]
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
            if self.max_age <= 0:
                parts.append(f"Expires={formatdate(0, usegmt=True)}")
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.secure:
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        if self.samesite:
            parts.append(f"SameSite={self.samesite}")
        return "; ".join(parts)
