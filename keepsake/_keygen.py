from __future__ import annotations

import hashlib
import typing as tp

from keepsake._headers import select_vary_headers

__all__ = ("plain_key", "vary_aware_key")


def _hash(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def plain_key(url: str) -> str:
    """SHA-256 of the URL, as 64 lowercase hex characters."""
    return _hash(url)


def vary_aware_key(
    url: str,
    request_headers: tp.Mapping[str, str] | None,
    vary_names: tp.Iterable[str],
) -> str:
    """
    Builds a key for a response that varies on some request headers.

    The Vary names are deduplicated and sorted case-insensitively, and for
    every name the request carries, `name:value` is appended to the URL.
    Header names are folded to lowercase, so neither the order of
    `vary_names` nor the casing of the request headers changes the key.
    Nominated headers missing from the request contribute nothing, and
    headers outside `vary_names` are never read.
    """
    selected = {name.lower(): value for name, value in select_vary_headers(request_headers, vary_names).items()}
    names = sorted({name.lower() for name in vary_names})

    # The name list keeps Vary-aware keys apart from the plain key of the
    # same URL, even when the request carries none of the nominated headers.
    buffer = [url, "vary:" + ",".join(names)]
    for name in names:
        if name in selected:
            buffer.append(f"{name}:{selected[name]}")

    return _hash("\n".join(buffer))
