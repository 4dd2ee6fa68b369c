"""Run-once-and-share-result primitive for asyncio callers."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Collapses concurrent calls of one operation into a single execution.

    The first caller of ``run`` starts the operation. Callers arriving while
    it is in flight await the same task. A successful result is memoized
    until ``reset``. A failure clears the in-flight task, so the next call
    starts over instead of re-raising a stale error.

    Cancelling one waiting caller does not cancel the shared task.
    """

    def __init__(self) -> None:
        self._task: asyncio.Future[T] | None = None
        self._done = False
        self._result: T | None = None

    @property
    def done(self) -> bool:
        return self._done

    @property
    def running(self) -> bool:
        return self._task is not None

    @property
    def result(self) -> T:
        if not self._done:
            raise RuntimeError("operation has not completed")
        return self._result  # type: ignore[return-value]

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self._done:
            return self._result  # type: ignore[return-value]
        if self._task is None:
            self._task = asyncio.ensure_future(self._execute(operation))
        return await asyncio.shield(self._task)

    async def _execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        task = asyncio.current_task()
        try:
            result = await operation()
        except BaseException:
            # A reset while in flight means this run is stale.
            if self._task is task:
                self._task = None
            raise
        if self._task is task:
            self._result = result
            self._done = True
            self._task = None
        return result

    def reset(self) -> None:
        """Forget the memoized result and detach any in-flight run."""
        self._task = None
        self._done = False
        self._result = None
