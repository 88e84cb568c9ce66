from __future__ import annotations

import logging
import types
import typing as tp

import httpx
from typing_extensions import assert_never

from keepsake._config import CacheConfig
from keepsake._compression import BaseCompressor
from keepsake._exceptions import CacheError, NetworkError
from keepsake._headers import Headers
from keepsake._keygen import plain_key, vary_aware_key
from keepsake._scheduler import AsyncRevalidationScheduler
from keepsake._spec import (
    AnyState,
    CouldNotBeStored,
    FetchFailed,
    FromCache,
    IdleClient,
    InvalidateEntries,
    NeedFetch,
    NotModified,
    ServeStale,
    StoreAndUse,
    entry_keys,
    index_metadata,
)
from keepsake._storage import AsyncEntryStore
from keepsake._synchronization import AsyncLock
from keepsake.models import CacheEntryMetadata, ProgressCallback, RequestOptions, RevalidationTask

logger = logging.getLogger("keepsake.cache")

__all__ = ("AsyncCache",)


class AsyncCache:
    """
    A client-side HTTP cache that answers GET requests from disk when it can.

    Freshness, validation and stale serving follow the response's
    Cache-Control, Expires and Vary headers, together with the per-call
    request options of `get`. All decisions are taken by the state machine
    in `keepsake._spec`; this class only performs the I/O it asks for.

    Use it as an async context manager, so that stale-while-revalidate
    refreshes run in the background and are awaited on exit:

        >>> async with AsyncCache(CacheConfig(cache_dir=Path("/tmp/app"))) as cache:
        ...     body = await cache.get("https://example.com/logo.png")

    Args:
        config: Cache configuration. Defaults to `CacheConfig()`.
        client: The HTTP client used for downloads. A client created here
            is also closed here.
        storage: Where entries are kept. Defaults to an `AsyncEntryStore`
            under `config.cache_dir`.
        scheduler: Runs background refreshes. Defaults to an
            `AsyncRevalidationScheduler` limited to `config.max_concurrent_revalidations`.
        compressor: Payload codec for the default storage. Defaults to
            the one described by `config`.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        storage: AsyncEntryStore | None = None,
        scheduler: AsyncRevalidationScheduler | None = None,
        compressor: BaseCompressor | None = None,
    ) -> None:
        self.config = config if config is not None else CacheConfig()
        self._owns_client = client is None
        self.client = client if client is not None else httpx.AsyncClient(follow_redirects=True)
        self.storage = (
            storage
            if storage is not None
            else AsyncEntryStore(
                self.config.cache_dir,
                compressor=compressor if compressor is not None else self.config.make_compressor(),
            )
        )
        self.scheduler = (
            scheduler
            if scheduler is not None
            else AsyncRevalidationScheduler(max_concurrency=self.config.max_concurrent_revalidations)
        )
        self._entered_scheduler = False
        self._initialized = False
        self._init_lock = AsyncLock()

    async def __aenter__(self) -> "AsyncCache":
        await self.initialize()
        if not self.scheduler.running:
            await self.scheduler.__aenter__()
            self._entered_scheduler = True
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        try:
            if self._entered_scheduler:
                self._entered_scheduler = False
                await self.scheduler.__aexit__(exc_type, exc_value, traceback)
        finally:
            if self._owns_client:
                await self.client.aclose()

    async def aclose(self) -> None:
        await self.__aexit__(None, None, None)

    async def initialize(self) -> None:
        """
        Prepares the storage and drops entries that expired while the cache
        was not in use. Every other operation calls it on first use.
        """
        async with self._init_lock:
            if self._initialized:
                return
            await self.storage.setup()
            removed = await self.storage.delete_expired()
            logger.debug(f"Cache initialized at {self.storage.path}, removed {removed} expired entries")
            self._initialized = True

    async def get(
        self,
        url: str,
        *,
        on_progress: ProgressCallback | None = None,
        no_cache: bool = False,
        max_age: int | None = None,
        max_stale: int | None = None,
        min_fresh: int | None = None,
        only_if_cached: bool = False,
        no_store: bool = False,
        request_headers: tp.Mapping[str, str] | None = None,
    ) -> bytes:
        """
        Returns the body of `url`, from the cache or from the network.

        Args:
            url: The resource to fetch.
            on_progress: Called with (received, total or None) after every downloaded chunk.
            no_cache: Go to the origin even for a fresh entry. A stale entry is still revalidated with its validators.
            max_age: Refuse stored entries older than this many seconds.
            max_stale: Accept entries that expired at most this many seconds ago.
            min_fresh: Require at least this many seconds of remaining freshness.
            only_if_cached: Never use the network.
            no_store: Do not write what is downloaded.
            request_headers: Sent with the request and matched against the stored Vary names.

        Stale-while-revalidate refreshes are fire-and-forget only while the
        cache is entered with `async with`. Otherwise they run before `get`
        returns.

        Raises:
            CacheMissError: `only_if_cached` and nothing is stored.
            NetworkError: The download failed and no stale-if-error entry could be served.
            CacheError: Any other failure.
        """
        try:
            options = RequestOptions(
                no_cache=no_cache,
                max_age=max_age,
                max_stale=max_stale,
                min_fresh=min_fresh,
                only_if_cached=only_if_cached,
                no_store=no_store,
                request_headers=request_headers,
                on_progress=on_progress,
            )
            await self.initialize()
            state: AnyState = IdleClient(
                options=options,
                url=url,
                default_cache_duration=self.config.default_cache_duration,
            )
            return await self._handle_states(state)
        except CacheError:
            raise
        except Exception as exc:
            raise CacheError(f"Failed to get data for {url}", exc) from exc

    async def metadata(
        self, url: str, request_headers: tp.Mapping[str, str] | None = None
    ) -> tp.Optional[CacheEntryMetadata]:
        """
        Returns the stored record for `url`, or None when there is none or it cannot be read.

        Without `request_headers`, a URL stored with Vary falls back to its
        index record when no variant was stored for the empty header set.
        """
        try:
            await self.initialize()
            meta = await self._lookup(url, Headers(request_headers or {}))
            if meta is None and request_headers is None:
                meta = await self.storage.read_meta(plain_key(url))
            return meta
        except CacheError as exc:
            logger.warning(f"Could not read the cache metadata of {url}: {exc}")
            return None

    async def clear_all(self) -> None:
        await self.initialize()
        await self.storage.delete_all()

    async def clear_expired(self) -> int:
        await self.initialize()
        return await self.storage.delete_expired()

    async def join(self) -> None:
        """Waits for every background revalidation to finish."""
        await self.scheduler.join()

    async def _handle_states(self, state: AnyState) -> bytes:
        while state:
            logger.debug(f"Handling state: {state.__class__.__name__}")
            if isinstance(state, IdleClient):
                state = await self._handle_idle_state(state)
            elif isinstance(state, FromCache):
                return await self._handle_from_cache(state)
            elif isinstance(state, ServeStale):
                return await self._handle_serve_stale(state)
            elif isinstance(state, NeedFetch):
                state = await self._handle_fetch(state)
            elif isinstance(state, NotModified):
                state = await self._handle_not_modified(state)
            elif isinstance(state, StoreAndUse):
                return await self._handle_store_and_use(state)
            elif isinstance(state, CouldNotBeStored):
                return state.content
            elif isinstance(state, InvalidateEntries):
                state = await self._handle_invalidate_entries(state)
            elif isinstance(state, FetchFailed):
                state = state.next()
            else:
                assert_never(state)

        raise RuntimeError("Unreachable")

    async def _lookup(self, url: str, request_headers: tp.Mapping[str, str]) -> tp.Optional[CacheEntryMetadata]:
        index = await self.storage.read_meta(plain_key(url))
        if index is None or not index.vary_header_names:
            return index
        return await self.storage.read_meta(vary_aware_key(url, request_headers, index.vary_header_names))

    async def _handle_idle_state(self, state: IdleClient) -> AnyState:
        meta = await self._lookup(state.url, state.options.request_headers or {})
        return state.next(meta)

    async def _read_payload(self, meta: CacheEntryMetadata, options: RequestOptions) -> bytes:
        key = entry_keys(meta.url, options.request_headers, meta)[0]
        return await self.storage.read_payload(key)

    async def _handle_from_cache(self, state: FromCache) -> bytes:
        assert state.meta is not None
        return await self._read_payload(state.meta, state.options)

    async def _handle_serve_stale(self, state: ServeStale) -> bytes:
        assert state.meta is not None
        payload = await self._read_payload(state.meta, state.options)
        await self._detach_revalidation(
            RevalidationTask(
                url=state.meta.url,
                key=entry_keys(state.meta.url, state.options.request_headers, state.meta)[0],
                meta=state.meta,
                request_headers=state.options.request_headers,
                on_progress=state.options.on_progress,
            )
        )
        return payload

    async def _detach_revalidation(self, task: RevalidationTask) -> None:
        """
        Hands the refresh of a stale entry to the scheduler.

        Outside of `async with` there is no scheduler running, so the
        refresh happens before returning instead.
        """
        if self.scheduler.running:
            self.scheduler.submit(task, self._revalidate)
            return

        logger.warning(
            f"No scheduler is running, revalidating {task.url} before returning. "
            "Enter the cache with `async with` to refresh in the background."
        )
        try:
            await self._revalidate(task)
        except Exception:
            logger.exception(f"Revalidation of {task.url} failed")

    async def _revalidate(self, task: RevalidationTask) -> None:
        current = await self.storage.read_meta(task.key)
        if current is not None and current.created_at > task.meta.created_at and not current.is_stale():
            logger.debug(f"{task.url} was refreshed after the revalidation was queued, skipping it")
            return

        logger.debug(f"Revalidating {task.url}")
        state = NeedFetch(
            options=RequestOptions(request_headers=task.request_headers, on_progress=task.on_progress),
            url=task.url,
            meta=task.meta,
            conditional=True,
            default_cache_duration=self.config.default_cache_duration,
        )
        await self._handle_states(state)

    async def _handle_fetch(self, state: NeedFetch) -> AnyState:
        try:
            status_code, headers, content = await self._download(
                state.url, state.request_headers(), state.options.on_progress
            )
        except httpx.HTTPError as exc:
            logger.debug(f"Downloading {state.url} failed: {exc!r}")
            return state.fail(NetworkError(f"Failed to download {state.url}", url=state.url, cause=exc))
        return state.next(status_code, headers, content)

    async def _download(
        self, url: str, headers: Headers, on_progress: ProgressCallback | None
    ) -> tp.Tuple[int, httpx.Headers, bytes]:
        async with self.client.stream("GET", url, headers=list(headers.items())) as response:
            if not 200 <= response.status_code < 300:
                return response.status_code, response.headers, b""

            content_length = response.headers.get("content-length")
            total = int(content_length) if content_length is not None and content_length.isdigit() else None

            chunks = []
            received = 0
            async for chunk in response.aiter_bytes():
                chunks.append(chunk)
                received += len(chunk)
                if on_progress is not None:
                    on_progress(received, total)

            return response.status_code, response.headers, b"".join(chunks)

    async def _handle_not_modified(self, state: NotModified) -> AnyState:
        assert state.meta is not None
        if state.should_store:
            key, *index_keys = state.keys
            await self.storage.write_meta(key, state.meta)
            await self._write_indexes(index_keys, state.meta)
        return state.next()

    async def _handle_store_and_use(self, state: StoreAndUse) -> bytes:
        assert state.meta is not None
        key, *index_keys = state.keys
        await self.storage.save_entry(key, state.meta, state.content)
        await self._write_indexes(index_keys, state.meta)
        return state.content

    async def _write_indexes(self, keys: tp.List[str], meta: CacheEntryMetadata) -> None:
        for key in keys:
            await self.storage.write_index(key, index_metadata(meta))

    async def _handle_invalidate_entries(self, state: InvalidateEntries) -> AnyState:
        for key in state.keys:
            await self.storage.remove(key)
        assert state.next_state is not None
        return state.next()
