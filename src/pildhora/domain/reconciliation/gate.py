"""Bounded concurrency and per-call timeouts for store calls."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from contextlib import AbstractAsyncContextManager

type LimiterFactory = Callable[[], AbstractAsyncContextManager[object]]


class CallGate:
    """Shared by readers and executor within one pass.

    ``slot()`` bounds how many entities are worked on at once; ``call()`` applies
    the per-call timeout and, for writes, the optional rate limiter. Create one
    gate per event loop: the semaphore and limiter bind to the running loop.
    """

    def __init__(
        self,
        *,
        max_workers: int,
        timeout_seconds: float,
        limiter: AbstractAsyncContextManager[object] | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._semaphore = asyncio.Semaphore(max_workers)
        self._timeout = timeout_seconds
        self._limiter = limiter

    def slot(self) -> asyncio.Semaphore:
        return self._semaphore

    async def call[T](self, func: Callable[[], Awaitable[T]], *, limited: bool = False) -> T:
        if limited and self._limiter is not None:
            async with self._limiter:
                return await asyncio.wait_for(func(), self._timeout)
        return await asyncio.wait_for(func(), self._timeout)
