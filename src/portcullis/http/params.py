"""Immutable multi-value parameters for query strings and form bodies."""

from collections.abc import Iterator, Mapping
from urllib.parse import parse_qs


class Params(Mapping[str, str]):
    """Immutable name -> values mapping.

    ``__getitem__`` returns the first value for a key;
    ``get_list`` returns all of them.
    """

    __slots__ = ("_data",)

    def __init__(self, encoded: str | bytes = "") -> None:
        if isinstance(encoded, bytes):
            encoded = encoded.decode("utf-8", errors="replace")
        parsed = parse_qs(encoded, keep_blank_values=True)
        object.__setattr__(self, "_data", parsed)

    def __getitem__(self, key: str) -> str:
        return self._data[key][0]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"Params({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        values = self._data.get(key)
        if values:
            return values[0]
        return default

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key*."""
        return list(self._data.get(key, []))
