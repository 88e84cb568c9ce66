from __future__ import annotations

import logging
import time
import typing as tp

from keepsake._headers import parse_cache_control
from keepsake._utils import parse_date

logger = logging.getLogger("keepsake.expiration")

__all__ = ("calculate_expires_at",)


def calculate_expires_at(
    headers: tp.Mapping[str, str],
    default_cache_duration: float,
    now: float | None = None,
) -> float:
    """
    Computes the absolute instant at which a response stops being fresh.

    The sources are tried in this order:

    1. a numeric `max-age` directive: `now + max-age`
    2. an `Expires` header: the date it names
    3. otherwise `now + default_cache_duration`

    An `Expires` value in the past is clamped to `now`, so the result is
    never earlier than the creation instant. An unparseable `Expires`
    (RFC 9111 section 5.3 mentions "0" specifically) means the response
    is already expired.

    Args:
        headers: Response headers, looked up case-insensitively.
        default_cache_duration: Lifetime in seconds used when the response
            says nothing about freshness.
        now: Current epoch time, defaults to `time.time()`.

    Returns:
        Expiry as epoch seconds.
    """
    now = time.time() if now is None else now

    max_age = parse_cache_control(headers.get("cache-control")).max_age
    if max_age is not None:
        return now + max_age

    expires = headers.get("expires")
    if expires is not None:
        expires_timestamp = parse_date(expires)
        if expires_timestamp is None:
            logger.debug(f"Treating the unparseable Expires value {expires!r} as already expired.")
            return now
        return max(float(expires_timestamp), now)

    return now + default_cache_duration
