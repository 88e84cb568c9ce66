from __future__ import annotations

import typing as tp

import anyio


class AsyncBaseFileManager:
    def __init__(self, is_binary: bool) -> None:
        self.is_binary = is_binary

    async def write_to(self, path: str, data: bytes | str, is_binary: bool | None = None) -> None:
        raise NotImplementedError()

    async def read_from(self, path: str, is_binary: bool | None = None) -> bytes | str:
        raise NotImplementedError()

    async def exists(self, path: str) -> bool:
        raise NotImplementedError()

    async def replace(self, source: str, target: str) -> None:
        raise NotImplementedError()

    async def remove(self, path: str) -> None:
        raise NotImplementedError()


class AsyncFileManager(AsyncBaseFileManager):
    async def write_to(self, path: str, data: bytes | str, is_binary: bool | None = None) -> None:
        is_binary = self.is_binary if is_binary is None else is_binary
        mode = "wb" if is_binary else "wt"
        async with await anyio.open_file(path, mode) as f:  # type: ignore[call-overload]
            await f.write(data)

    async def read_from(self, path: str, is_binary: bool | None = None) -> bytes | str:
        is_binary = self.is_binary if is_binary is None else is_binary
        mode = "rb" if is_binary else "rt"

        async with await anyio.open_file(path, mode) as f:  # type: ignore[call-overload]
            return tp.cast(tp.Union[bytes, str], await f.read())

    async def exists(self, path: str) -> bool:
        return await anyio.Path(path).is_file()

    async def replace(self, source: str, target: str) -> None:
        await anyio.Path(source).replace(target)

    async def remove(self, path: str) -> None:
        await anyio.Path(path).unlink(missing_ok=True)
