from __future__ import annotations

import json
import math
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Mapping, Optional, Tuple

from keepsake._exceptions import SerializationError, ValidationError
from keepsake._headers import Headers

__all__ = (
    "METADATA_VERSION",
    "CacheEntryMetadata",
    "ProgressCallback",
    "RequestOptions",
    "RevalidationTask",
)

METADATA_VERSION = 1

ProgressCallback = Callable[[int, Optional[int]], None]
"""Called with (bytes received so far, declared total or None) after every chunk."""


def _now(now: float | None) -> float:
    return time.time() if now is None else now


def _optional(data: Mapping[str, Any], key: str, type_: type | tuple[type, ...]) -> Any:
    value = data.get(key)
    if value is not None and (not isinstance(value, type_) or isinstance(value, bool) and type_ is int):
        raise SerializationError(
            f"The field '{key}' should be of type {type_!r}, but got {value!r}.",
            data_type="CacheEntryMetadata",
        )
    return value


@dataclass(frozen=True)
class CacheEntryMetadata:
    """
    Everything the cache knows about one stored response.

    A single record is persisted per cache key as JSON. Optional fields
    missing from an older record take the defaults below, and unknown
    fields are ignored, so the format can grow without breaking readers.
    """

    url: str
    """The requested URL, before any Vary folding."""

    created_at: float
    """Epoch seconds at which the response was stored."""

    payload_length: int
    """Size of the uncompressed payload in bytes."""

    etag: Optional[str] = None
    last_modified: Optional[str] = None

    expires_at: Optional[float] = None
    """Epoch seconds after which the entry is stale. Never earlier than `created_at`."""

    content_type: Optional[str] = None

    requires_revalidation: bool = False
    """The response carried `no-cache`."""

    must_revalidate: bool = False
    """The response carried `must-revalidate`; no stale serving of any kind."""

    stale_while_revalidate: Optional[int] = None
    stale_if_error: Optional[int] = None

    vary_header_names: Optional[Tuple[str, ...]] = None
    """Header names from the response's Vary header, verbatim."""

    version: int = METADATA_VERSION

    def is_stale(self, now: float | None = None) -> bool:
        return self.expires_at is not None and _now(now) >= self.expires_at

    def age(self, now: float | None = None) -> float:
        return _now(now) - self.created_at

    def remaining_freshness(self, now: float | None = None) -> float:
        if self.expires_at is None:
            return math.inf
        return self.expires_at - _now(now)

    def staleness(self, now: float | None = None) -> float:
        """Seconds elapsed since expiry, zero while the entry is fresh."""
        if self.expires_at is None:
            return 0.0
        return max(0.0, _now(now) - self.expires_at)

    def is_older_than(self, max_age: int, now: float | None = None) -> bool:
        return max_age == 0 or self.age(now) > max_age

    def has_minimum_freshness(self, min_fresh: int, now: float | None = None) -> bool:
        return self.remaining_freshness(now) >= min_fresh

    def is_within_stale_period(self, max_stale: int, now: float | None = None) -> bool:
        return self.is_stale(now) and self.staleness(now) <= max_stale

    def _within_grace(self, window: Optional[int], now: float | None) -> bool:
        if window is None or self.must_revalidate or not self.is_stale(now):
            return False
        return self.staleness(now) <= window

    def can_serve_stale(self, now: float | None = None) -> bool:
        """Stale, but still inside the stale-while-revalidate window."""
        return self._within_grace(self.stale_while_revalidate, now)

    def can_serve_stale_on_error(self, now: float | None = None) -> bool:
        """Stale, but still inside the stale-if-error window."""
        return self._within_grace(self.stale_if_error, now)

    def grace_period(self) -> int:
        if self.must_revalidate:
            return 0
        return max(self.stale_while_revalidate or 0, self.stale_if_error or 0)

    def is_expired(self, now: float | None = None) -> bool:
        """Stale with no grace window left, i.e. safe to delete."""
        return self.is_stale(now) and self.staleness(now) > self.grace_period()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.vary_header_names is not None:
            data["vary_header_names"] = list(self.vary_header_names)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CacheEntryMetadata":
        if not isinstance(data, Mapping):
            raise SerializationError(f"Expected a JSON object, but got {type(data).__name__}.", data_type="CacheEntryMetadata")

        try:
            url = data["url"]
            created_at = data["created_at"]
            payload_length = data["payload_length"]
        except KeyError as exc:
            raise SerializationError(
                f"The required field {exc.args[0]!r} is missing.", data_type="CacheEntryMetadata", cause=exc
            ) from exc

        if not isinstance(url, str):
            raise SerializationError("The field 'url' should be a string.", data_type="CacheEntryMetadata")
        if not isinstance(created_at, (int, float)) or isinstance(created_at, bool):
            raise SerializationError("The field 'created_at' should be a number.", data_type="CacheEntryMetadata")
        if not isinstance(payload_length, int) or isinstance(payload_length, bool):
            raise SerializationError("The field 'payload_length' should be an integer.", data_type="CacheEntryMetadata")

        vary_header_names = _optional(data, "vary_header_names", list)
        expires_at = _optional(data, "expires_at", (int, float))

        return cls(
            url=url,
            created_at=float(created_at),
            payload_length=payload_length,
            etag=_optional(data, "etag", str),
            last_modified=_optional(data, "last_modified", str),
            expires_at=float(expires_at) if expires_at is not None else None,
            content_type=_optional(data, "content_type", str),
            requires_revalidation=bool(data.get("requires_revalidation", False)),
            must_revalidate=bool(data.get("must_revalidate", False)),
            stale_while_revalidate=_optional(data, "stale_while_revalidate", int),
            stale_if_error=_optional(data, "stale_if_error", int),
            vary_header_names=tuple(str(name) for name in vary_header_names) if vary_header_names else None,
            version=data.get("version", METADATA_VERSION),
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "CacheEntryMetadata":
        try:
            data = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as exc:
            raise SerializationError("Could not decode the metadata record.", data_type="CacheEntryMetadata", cause=exc) from exc
        return cls.from_dict(data)


@dataclass
class RequestOptions:
    """
    Per-call overrides, the request-side counterpart of Cache-Control.

    Attributes:
    ----------
    no_cache : bool
        Skip the stored entry and fetch unconditionally.
    max_age : int | None
        Refuse entries older than this many seconds.
    max_stale : int | None
        Accept entries that expired at most this many seconds ago.
    min_fresh : int | None
        Require at least this many seconds of freshness left.
    only_if_cached : bool
        Never touch the network; fail with CacheMissError on a miss.
    no_store : bool
        Do not persist whatever is fetched.
    request_headers : Mapping[str, str] | None
        Extra headers sent with the request, also used for Vary matching.
    on_progress : ProgressCallback | None
        Download progress observer.
    """

    no_cache: bool = False
    max_age: Optional[int] = None
    max_stale: Optional[int] = None
    min_fresh: Optional[int] = None
    only_if_cached: bool = False
    no_store: bool = False
    request_headers: Optional[Mapping[str, str]] = None
    on_progress: Optional[ProgressCallback] = None

    def __post_init__(self) -> None:
        for name in ("max_age", "max_stale", "min_fresh"):
            value = getattr(self, name)
            if value is None:
                continue
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValidationError(f"The option '{name}' must be a non-negative integer.", field=name, value=value)

        if self.request_headers is not None and not isinstance(self.request_headers, Headers):
            self.request_headers = Headers(self.request_headers)


@dataclass
class RevalidationTask:
    """A background refresh of one stale entry. Lives only in memory."""

    url: str
    key: str
    meta: CacheEntryMetadata
    request_headers: Optional[Mapping[str, str]] = None
    on_progress: Optional[ProgressCallback] = None
