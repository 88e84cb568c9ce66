import threading
from pathlib import Path
from typing import List

import pytest

from keepsake import AsyncEntryStore, CacheEntryMetadata, IdentityCompressor, SerializationError, StorageError, plain_key
from keepsake._files import AsyncFileManager

NOW = 1_700_000_000.0


def make_meta(**kwargs) -> CacheEntryMetadata:
    defaults = dict(url="https://example.com", created_at=NOW, payload_length=4, expires_at=NOW + 60)
    defaults.update(kwargs)
    return CacheEntryMetadata(**defaults)


@pytest.fixture()
async def storage(cache_dir: Path) -> AsyncEntryStore:
    store = AsyncEntryStore(cache_dir)
    await store.setup()
    return store


@pytest.mark.anyio
async def test_setup_creates_the_directory(cache_dir: Path):
    store = AsyncEntryStore(cache_dir)
    await store.setup()

    assert store.path == cache_dir / "keepsake"
    assert (store.path / ".gitignore").read_text() == "# Automatically created by keepsake\n*"


@pytest.mark.anyio
async def test_default_location(use_temp_dir):
    store = AsyncEntryStore()
    await store.setup()
    assert Path(".cache/keepsake").is_dir()


@pytest.mark.anyio
async def test_save_and_read(storage: AsyncEntryStore):
    meta = make_meta()
    await storage.save_entry("key", meta, b"test")

    assert await storage.read_meta("key") == meta
    assert await storage.read_payload("key") == b"test"
    assert await storage.keys() == ["key"]
    assert (storage.path / "key.meta").is_file()
    assert (storage.path / "key.cache").read_bytes() != b"test"
    assert not list(storage.path.glob("*.tmp"))


@pytest.mark.anyio
async def test_identity_storage_keeps_raw_bytes(cache_dir: Path):
    store = AsyncEntryStore(cache_dir, compressor=IdentityCompressor())
    await store.setup()
    await store.save_entry("key", make_meta(), b"test")
    assert (store.path / "key.cache").read_bytes() == b"test"


@pytest.mark.anyio
async def test_compression_runs_off_the_event_loop(cache_dir: Path):
    threads: List[int] = []

    class RecordingCompressor(IdentityCompressor):
        def compress(self, data: bytes) -> bytes:
            threads.append(threading.get_ident())
            return data

        def decompress(self, data: bytes) -> bytes:
            threads.append(threading.get_ident())
            return data

    store = AsyncEntryStore(cache_dir, compressor=RecordingCompressor())
    await store.setup()
    await store.save_entry("key", make_meta(), b"test")
    await store.write_payload("key", b"again")
    assert await store.read_payload("key") == b"again"

    assert len(threads) == 3
    assert threading.get_ident() not in threads


@pytest.mark.anyio
async def test_missing_entry(storage: AsyncEntryStore):
    assert await storage.read_meta("missing") is None
    with pytest.raises(StorageError, match="Cache file not found"):
        await storage.read_payload("missing")


@pytest.mark.anyio
async def test_write_meta_and_payload_separately(storage: AsyncEntryStore):
    await storage.write_payload("key", b"first")
    await storage.write_meta("key", make_meta())
    await storage.write_meta("key", make_meta(etag='"v2"'))

    meta = await storage.read_meta("key")
    assert meta is not None and meta.etag == '"v2"'
    assert await storage.read_payload("key") == b"first"


@pytest.mark.anyio
async def test_corrupt_meta_raises(storage: AsyncEntryStore):
    (storage.path / "key.meta").write_text("{broken")
    with pytest.raises(SerializationError):
        await storage.read_meta("key")


@pytest.mark.anyio
async def test_remove(storage: AsyncEntryStore):
    await storage.save_entry("key", make_meta(), b"test")
    await storage.remove("key")
    await storage.remove("key")

    assert await storage.read_meta("key") is None
    assert not (storage.path / "key.cache").exists()


@pytest.mark.anyio
async def test_delete_all_keeps_gitignore(storage: AsyncEntryStore):
    await storage.save_entry("first", make_meta(), b"1")
    await storage.save_entry("second", make_meta(), b"2")
    (storage.path / "leftover.meta.abc.tmp").write_bytes(b"")

    await storage.delete_all()

    assert sorted(path.name for path in storage.path.iterdir()) == [".gitignore"]


@pytest.mark.anyio
async def test_delete_expired(storage: AsyncEntryStore):
    await storage.save_entry("fresh", make_meta(expires_at=NOW + 600), b"1")
    await storage.save_entry("expired", make_meta(expires_at=NOW), b"2")
    await storage.save_entry("in-grace", make_meta(expires_at=NOW, stale_if_error=300), b"3")
    await storage.save_entry("no-expiry", make_meta(expires_at=None), b"4")
    (storage.path / "corrupt.meta").write_text("not json")

    removed = await storage.delete_expired(now=NOW + 120)

    assert removed == 1
    assert await storage.keys() == ["corrupt", "fresh", "in-grace", "no-expiry"]
    assert not (storage.path / "expired.cache").exists()


@pytest.mark.anyio
async def test_write_index_drops_the_payload(storage: AsyncEntryStore):
    key = plain_key("https://example.com")
    await storage.save_entry(key, make_meta(), b"body")

    await storage.write_index(key, make_meta(expires_at=None, payload_length=0, vary_header_names=("Accept",)))

    meta = await storage.read_meta(key)
    assert meta is not None
    assert meta.vary_header_names == ("Accept",)
    assert not (storage.path / f"{key}.cache").exists()


@pytest.mark.anyio
async def test_delete_expired_keeps_the_index_while_variants_remain(storage: AsyncEntryStore):
    index_key = plain_key("https://example.com")
    index = make_meta(expires_at=None, payload_length=0, vary_header_names=("Accept",))
    await storage.write_index(index_key, index)
    await storage.save_entry("json", make_meta(expires_at=NOW + 3600, vary_header_names=("Accept",)), b"1")
    await storage.save_entry("html", make_meta(expires_at=NOW + 10, vary_header_names=("Accept",)), b"2")

    assert await storage.delete_expired(now=NOW + 60) == 1
    assert await storage.keys() == sorted([index_key, "json"])

    assert await storage.delete_expired(now=NOW + 7200) == 1
    assert await storage.keys() == []


@pytest.mark.anyio
async def test_failed_save_leaves_nothing_behind(storage: AsyncEntryStore, monkeypatch: pytest.MonkeyPatch):
    await storage.save_entry("key", make_meta(), b"old")

    async def failing_replace(self, source: str, target: str) -> None:
        if target.endswith(".meta"):
            raise OSError("disk full")
        await original_replace(self, source, target)

    original_replace = AsyncFileManager.replace
    monkeypatch.setattr(AsyncFileManager, "replace", failing_replace)

    with pytest.raises(StorageError, match="Failed to save cache entry"):
        await storage.save_entry("key", make_meta(etag='"new"'), b"new")

    assert await storage.read_meta("key") is None
    assert not (storage.path / "key.cache").exists()
    assert not list(storage.path.glob("*.tmp"))
