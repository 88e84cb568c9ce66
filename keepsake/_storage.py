from __future__ import annotations

import logging
import time
import typing as tp
import uuid
from pathlib import Path

import anyio
import anyio.to_thread

from keepsake._compression import BaseCompressor, BrotliCompressor
from keepsake._exceptions import InitializationError, SerializationError, StorageError
from keepsake._files import AsyncFileManager
from keepsake._keygen import plain_key
from keepsake._synchronization import AsyncKeyedLock
from keepsake._utils import ensure_cache_dir, partition
from keepsake.models import CacheEntryMetadata

logger = logging.getLogger("keepsake.storage")

__all__ = ("AsyncEntryStore",)

META_SUFFIX = ".meta"
PAYLOAD_SUFFIX = ".cache"
TEMP_SUFFIX = ".tmp"


class AsyncEntryStore:
    """
    A file storage holding one metadata record and one payload per cache key.

    The files are `<key>.meta` (JSON) and `<key>.cache` (compressed bytes),
    kept in a dedicated `keepsake/` directory under `base_path`.

    :param base_path: A writable directory the cache directory is created in, defaults to `.cache`
    :type base_path: tp.Optional[Path], optional
    :param compressor: Codec applied to payloads, defaults to `BrotliCompressor()`
    :type compressor: tp.Optional[BaseCompressor], optional
    """

    def __init__(
        self,
        base_path: tp.Optional[Path] = None,
        compressor: tp.Optional[BaseCompressor] = None,
    ) -> None:
        self._base_path = Path(base_path) if base_path is not None else Path(".cache")
        self._cache_path = self._base_path / "keepsake"
        self._compressor = compressor if compressor is not None else BrotliCompressor()
        self._file_manager = AsyncFileManager(is_binary=True)
        self._locks = AsyncKeyedLock()

    @property
    def path(self) -> Path:
        return self._cache_path

    @property
    def compressor(self) -> BaseCompressor:
        return self._compressor

    def _meta_path(self, key: str) -> str:
        return str(self._cache_path / f"{key}{META_SUFFIX}")

    def _payload_path(self, key: str) -> str:
        return str(self._cache_path / f"{key}{PAYLOAD_SUFFIX}")

    def _temp_path(self, path: str) -> str:
        return f"{path}.{uuid.uuid4().hex}{TEMP_SUFFIX}"

    async def setup(self) -> None:
        """Creates the cache directory if it does not exist yet."""
        try:
            self._cache_path = ensure_cache_dir(self._base_path, name="keepsake")
        except OSError as exc:
            raise InitializationError(f"Failed to initialize cache directory {self._cache_path}", exc) from exc

    async def read_meta(self, key: str) -> tp.Optional[CacheEntryMetadata]:
        """
        Reads the metadata record stored under `key`.

        Returns None when there is no record. An unreadable file raises
        `StorageError`, a record that cannot be decoded raises `SerializationError`.
        """
        path = self._meta_path(key)
        try:
            if not await self._file_manager.exists(path):
                return None
            raw = await self._file_manager.read_from(path)
        except OSError as exc:
            raise StorageError("Failed to read meta information", path=path, cause=exc) from exc
        return CacheEntryMetadata.from_json(raw)

    async def write_meta(self, key: str, meta: CacheEntryMetadata) -> None:
        path = self._meta_path(key)
        async with self._locks(key):
            await self._write_atomically(path, meta.to_json().encode("utf-8"))

    async def read_payload(self, key: str) -> bytes:
        path = self._payload_path(key)
        try:
            if not await self._file_manager.exists(path):
                raise StorageError("Cache file not found", path=path)
            compressed = await self._file_manager.read_from(path)
        except OSError as exc:
            raise StorageError("Failed to read cache data", path=path, cause=exc) from exc

        assert isinstance(compressed, bytes)
        return await anyio.to_thread.run_sync(self._compressor.decompress, compressed)

    async def write_payload(self, key: str, data: bytes) -> None:
        path = self._payload_path(key)
        compressed = await anyio.to_thread.run_sync(self._compressor.compress, data)
        async with self._locks(key):
            await self._write_atomically(path, compressed)

    async def save_entry(self, key: str, meta: CacheEntryMetadata, data: bytes) -> None:
        """
        Writes the metadata record and the payload of `key` as one unit.

        Both files are written to temporary names first and then moved into
        place, payload before metadata. If anything fails, neither file is
        left behind, so a reader never finds metadata without its payload.
        """
        compressed = await anyio.to_thread.run_sync(self._compressor.compress, data)
        if data:
            logger.debug(f"Saving cache entry {key}, compression ratio: {len(compressed) / len(data):.3f}")

        meta_path, payload_path = self._meta_path(key), self._payload_path(key)
        meta_temp, payload_temp = self._temp_path(meta_path), self._temp_path(payload_path)

        async with self._locks(key):
            try:
                await self._file_manager.write_to(payload_temp, compressed)
                await self._file_manager.write_to(meta_temp, meta.to_json().encode("utf-8"))
                await self._file_manager.replace(payload_temp, payload_path)
                await self._file_manager.replace(meta_temp, meta_path)
            except OSError as exc:
                await self._discard(meta_temp, payload_temp, meta_path, payload_path)
                raise StorageError("Failed to save cache entry", path=meta_path, cause=exc) from exc

    async def write_index(self, key: str, meta: CacheEntryMetadata) -> None:
        """Writes a metadata-only record under `key` and drops any payload stored there."""
        async with self._locks(key):
            await self._write_atomically(self._meta_path(key), meta.to_json().encode("utf-8"))
            await self._discard(self._payload_path(key))

    async def remove(self, key: str) -> None:
        async with self._locks(key):
            await self._discard(self._meta_path(key), self._payload_path(key))

    async def keys(self) -> tp.List[str]:
        """Cache keys that currently have a metadata record."""
        if not await anyio.Path(self._cache_path).is_dir():
            return []
        return sorted(
            [path.name[: -len(META_SUFFIX)] async for path in anyio.Path(self._cache_path).iterdir() if path.name.endswith(META_SUFFIX)]
        )

    async def delete_all(self) -> None:
        """Removes every metadata record, payload and leftover temporary file."""
        cache_dir = anyio.Path(self._cache_path)
        if not await cache_dir.is_dir():
            return

        try:
            async for path in cache_dir.iterdir():
                if path.name.endswith((META_SUFFIX, PAYLOAD_SUFFIX, TEMP_SUFFIX)):
                    await path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError("Failed to clear all cache files", path=str(self._cache_path), cause=exc) from exc
        logger.debug("Removed all cache entries")

    async def delete_expired(self, now: float | None = None) -> int:
        """
        Removes every entry that is stale and past all of its grace windows.

        Records that cannot be read or decoded are skipped. The Vary index
        record of a URL stays while any variant of that URL remains and goes
        with the last one. Returns the number of removed entries, indexes
        not included.
        """
        now = time.time() if now is None else now

        entries: tp.List[tp.Tuple[str, CacheEntryMetadata]] = []
        for key in await self.keys():
            try:
                meta = await self.read_meta(key)
            except (StorageError, SerializationError) as exc:
                logger.debug(f"Skipping the unreadable cache entry {key}: {exc}")
                continue
            if meta is not None:
                entries.append((key, meta))

        indexes, entries = partition(entries, lambda entry: _is_index(*entry))
        expired, remaining = partition(entries, lambda entry: entry[1].is_expired(now))
        for key, _meta in expired:
            await self.remove(key)

        variant_urls = {meta.url for _key, meta in remaining if meta.vary_header_names}
        for key, meta in indexes:
            if meta.url not in variant_urls:
                logger.debug(f"Removing the Vary index of {meta.url}, no variants are left")
                await self.remove(key)

        if expired:
            logger.debug(f"Removed {len(expired)} expired cache entries")
        return len(expired)

    async def _write_atomically(self, path: str, data: bytes) -> None:
        temp = self._temp_path(path)
        try:
            await self._file_manager.write_to(temp, data)
            await self._file_manager.replace(temp, path)
        except OSError as exc:
            await self._discard(temp)
            raise StorageError("Failed to write cache file", path=path, cause=exc) from exc

    async def _discard(self, *paths: str) -> None:
        for path in paths:
            try:
                await self._file_manager.remove(path)
            except OSError as exc:
                logger.debug(f"Could not remove {path}: {exc}")


def _is_index(key: str, meta: CacheEntryMetadata) -> bool:
    return bool(meta.vary_header_names) and key == plain_key(meta.url)
