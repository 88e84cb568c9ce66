from __future__ import annotations

from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    MutableMapping,
    Optional,
    Tuple,
    Union,
)

__all__ = (
    "CacheControl",
    "Headers",
    "Vary",
    "parse_cache_control",
    "parse_directives",
    "select_vary_headers",
)


class Headers(MutableMapping[str, str]):
    """
    Case-insensitive, multi-value header mapping.

    Reading a key joins every value stored under it with ", ".
    Setting a key appends another value instead of replacing it.
    """

    def __init__(self, headers: Union[Mapping[str, Union[str, List[str]]], Iterable[Tuple[str, str]], None] = None) -> None:
        self._headers: Dict[str, List[str]] = {}
        self._names: Dict[str, str] = {}

        if headers is None:
            return

        items = headers.items() if isinstance(headers, Mapping) else headers
        for key, value in items:
            for single in [value] if isinstance(value, str) else value:
                self[key] = single

    def get_list(self, key: str) -> Optional[List[str]]:
        return self._headers.get(key.lower(), None)

    def original_name(self, key: str) -> str:
        """Return the header name with the casing it was first added with."""
        return self._names[key.lower()]

    def __getitem__(self, key: str) -> str:
        return ", ".join(self._headers[key.lower()])

    def __setitem__(self, key: str, value: str) -> None:
        self._names.setdefault(key.lower(), key)
        self._headers.setdefault(key.lower(), []).append(value)

    def __delitem__(self, key: str) -> None:
        del self._headers[key.lower()]
        del self._names[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __repr__(self) -> str:
        return repr(self._headers)

    def __str__(self) -> str:
        return str(self._headers)

    def __eq__(self, other_headers: Any) -> bool:
        return isinstance(other_headers, Headers) and self._headers == other_headers._headers


def strip_ows_around(text: str) -> str:
    return text.strip(" \t")


def parse_int_value(value: Optional[str]) -> Optional[int]:
    """Parse a delta-seconds value, return None if missing, negative or not a number."""
    if not value or not value.isdigit():
        return None
    try:
        return int(value)
    except ValueError:
        return None


def parse_directives(value: Optional[str]) -> Dict[str, Optional[str]]:
    """
    Split a Cache-Control value into an ordered directive map.

    Tokens are separated by commas and split on the first "=".
    Names are lowercased, blank names are dropped and the first
    occurrence of a duplicated name wins. A name followed by an
    empty value (`max-age=`) keeps the empty string as its value.

    Examples:
        >>> parse_directives(" no-store , max-age = 7200 ")
        {'no-store': None, 'max-age': '7200'}
        >>> parse_directives("max-age=")
        {'max-age': ''}
    """
    directives: Dict[str, Optional[str]] = {}

    if value is None:
        return directives

    for token in value.split(","):
        token = strip_ows_around(token)
        if not token:
            continue

        name, sep, directive_value = token.partition("=")
        name = strip_ows_around(name).lower()
        if not name:
            continue

        if name not in directives:
            directives[name] = strip_ows_around(directive_value) if sep else None

    return directives


class CacheControl:
    """
    Typed view over a parsed Cache-Control header.

    The same class serves request and response headers. Numeric
    queries return None (never zero) when the directive is absent
    or its value is not a non-negative integer.
    """

    def __init__(self, directives: Optional[Dict[str, Optional[str]]] = None) -> None:
        self.directives: Dict[str, Optional[str]] = directives if directives is not None else {}

    def has(self, name: str) -> bool:
        return name.lower() in self.directives

    def get(self, name: str) -> Optional[str]:
        return self.directives.get(name.lower())

    def _int(self, name: str) -> Optional[int]:
        return parse_int_value(self.get(name))

    @property
    def no_store(self) -> bool:
        return self.has("no-store")

    @property
    def no_cache(self) -> bool:
        return self.has("no-cache")

    @property
    def must_revalidate(self) -> bool:
        return self.has("must-revalidate")

    @property
    def only_if_cached(self) -> bool:
        return self.has("only-if-cached")

    @property
    def has_stale_while_revalidate(self) -> bool:
        return self.has("stale-while-revalidate")

    @property
    def max_age(self) -> Optional[int]:
        # Storage is prohibited, so an age limit means nothing.
        if self.no_store:
            return None
        return self._int("max-age")

    @property
    def stale_while_revalidate(self) -> Optional[int]:
        return self._int("stale-while-revalidate")

    @property
    def stale_if_error(self) -> Optional[int]:
        return self._int("stale-if-error")

    @property
    def max_stale(self) -> Optional[int]:
        return self._int("max-stale")

    @property
    def min_fresh(self) -> Optional[int]:
        return self._int("min-fresh")

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, CacheControl) and self.directives == other.directives

    def __repr__(self) -> str:
        fields = ", ".join(name if value is None else f"{name}={value}" for name, value in self.directives.items())
        return f"<{type(self).__name__} {fields}>"


def parse_cache_control(value: Optional[str]) -> CacheControl:
    """
    Parse a Cache-Control header from either a request or a response.

    Examples:
        >>> cc = parse_cache_control("public, max-age=3600, must-revalidate")
        >>> cc.max_age
        3600
        >>> cc.must_revalidate
        True
        >>> parse_cache_control("no-store, max-age=3600").max_age is None
        True
    """
    return CacheControl(parse_directives(value))


class Vary:
    def __init__(self, values: List[str]) -> None:
        self.values = values

    @classmethod
    def from_value(cls, vary_value: Optional[str]) -> "Vary":
        values = []

        for field_name in (vary_value or "").split(","):
            field_name = field_name.strip()
            if field_name:
                values.append(field_name)
        return Vary(values)

    @property
    def is_wildcard(self) -> bool:
        return "*" in self.values

    def __bool__(self) -> bool:
        return bool(self.values)


def select_vary_headers(request_headers: Optional[Mapping[str, str]], vary_names: Iterable[str]) -> Dict[str, str]:
    """
    Return the request headers nominated by a Vary header.

    Matching is case-insensitive, the returned mapping keeps the header
    names as they appear in `request_headers`. Nominated headers that the
    request does not carry are left out.
    """
    if not request_headers:
        return {}

    wanted = {name.lower() for name in vary_names}
    return {name: value for name, value in request_headers.items() if name.lower() in wanted}
