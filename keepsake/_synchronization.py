from __future__ import annotations

import types
import typing as tp

import anyio


class AsyncLock:
    def __init__(self) -> None:
        self._lock = anyio.Lock()

    async def __aenter__(self) -> None:
        await self._lock.acquire()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: types.TracebackType | None = None,
    ) -> None:
        self._lock.release()


class AsyncKeyedLock:
    """
    One `AsyncLock` per key, created on demand.

    Locks are dropped once nobody holds or waits for them, so the
    mapping only grows with the number of keys in flight.
    """

    def __init__(self) -> None:
        self._locks: tp.Dict[str, AsyncLock] = {}
        self._users: tp.Dict[str, int] = {}

    def __call__(self, key: str) -> "_KeyedLockContext":
        return _KeyedLockContext(self, key)


class _KeyedLockContext:
    def __init__(self, owner: AsyncKeyedLock, key: str) -> None:
        self._owner = owner
        self._key = key

    async def __aenter__(self) -> None:
        owner, key = self._owner, self._key
        lock = owner._locks.setdefault(key, AsyncLock())
        owner._users[key] = owner._users.get(key, 0) + 1
        try:
            await lock.__aenter__()
        except BaseException:
            self._release_user()
            raise

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: types.TracebackType | None = None,
    ) -> None:
        await self._owner._locks[self._key].__aexit__(exc_type, exc_value, traceback)
        self._release_user()

    def _release_user(self) -> None:
        owner, key = self._owner, self._key
        owner._users[key] -= 1
        if owner._users[key] == 0:
            del owner._users[key]
            del owner._locks[key]
