from __future__ import annotations

import logging
import types
import typing as tp
from collections import deque

import anyio
from anyio.abc import TaskGroup

from keepsake.models import RevalidationTask

logger = logging.getLogger("keepsake.scheduler")

__all__ = ("AsyncRevalidationScheduler", "RevalidationHandler")

RevalidationHandler = tp.Callable[[RevalidationTask], tp.Awaitable[None]]


class AsyncRevalidationScheduler:
    """
    Runs background refreshes with a cap on how many run at once.

    Tasks start in the order they were submitted. The scheduler owns an
    `anyio` task group, so it has to be entered before anything is submitted:

        >>> async with AsyncRevalidationScheduler(max_concurrency=2) as scheduler:
        ...     scheduler.submit(task, handler)

    Leaving the context waits for every queued task to finish.

    :param max_concurrency: How many handlers may run at the same time, defaults to 5
    :type max_concurrency: int, optional
    """

    def __init__(self, max_concurrency: int = 5) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.max_concurrency = max_concurrency
        self._pending: tp.Deque[tp.Tuple[RevalidationTask, RevalidationHandler]] = deque()
        self._active = 0
        self._task_group: tp.Optional[TaskGroup] = None
        self._idle: tp.Optional[anyio.Event] = None

    @property
    def active(self) -> int:
        return self._active

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def running(self) -> bool:
        return self._task_group is not None

    async def __aenter__(self) -> "AsyncRevalidationScheduler":
        if self._task_group is not None:
            raise RuntimeError("The scheduler is already running")

        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        self._idle = anyio.Event()
        self._idle.set()
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> tp.Optional[bool]:
        assert self._task_group is not None
        task_group = self._task_group
        try:
            if exc_type is None:
                await self.join()
        finally:
            self._task_group = None
        return await task_group.__aexit__(exc_type, exc_value, traceback)

    def submit(self, task: RevalidationTask, handler: RevalidationHandler) -> None:
        """Queues `task` and returns immediately."""
        if self._task_group is None:
            raise RuntimeError("The scheduler must be entered with `async with` before submitting tasks")

        assert self._idle is not None
        if self._idle.is_set():
            self._idle = anyio.Event()

        self._pending.append((task, handler))
        logger.debug(f"Queued revalidation of {task.url} ({self.pending} pending, {self.active} active)")
        self._start_pending()

    async def join(self) -> None:
        """Waits until nothing is queued or running."""
        while self._idle is not None and (self._active or self._pending):
            await self._idle.wait()

    def _start_pending(self) -> None:
        assert self._task_group is not None
        while self._pending and self._active < self.max_concurrency:
            task, handler = self._pending.popleft()
            self._active += 1
            self._task_group.start_soon(self._run, task, handler)

    async def _run(self, task: RevalidationTask, handler: RevalidationHandler) -> None:
        try:
            await handler(task)
        except Exception:
            logger.exception(f"Background revalidation of {task.url} failed")
        finally:
            self._active -= 1
            if self._pending and self._task_group is not None:
                self._start_pending()
            elif not self._active and not self._pending and self._idle is not None:
                self._idle.set()
