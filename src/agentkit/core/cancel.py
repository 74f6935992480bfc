"""Cooperative cancellation shared by the agent loop, provider calls and sub-agents."""

import asyncio
from typing import (
    Awaitable,
    Optional,
    TypeVar,
)

T = TypeVar("T")


class AbortedError(RuntimeError):
    """Raised when the caller cancelled the run."""

    def __init__(self, message: str = "Request aborted by caller") -> None:
        super().__init__(message)


class CancelSignal:
    """
    A one-shot flag that in-flight work can wait on.

    Once :meth:`cancel` is called the signal stays raised; create a new one per run.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Raise the signal (idempotent)."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """True once :meth:`cancel` has been called."""
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until the signal is raised."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`AbortedError` if the signal is set."""
        if self._event.is_set():
            raise AbortedError()


async def race(work: Awaitable[T], cancel: Optional[CancelSignal]) -> T:
    """Await *work*, abandoning it with :class:`AbortedError` as soon as *cancel* is raised."""
    if cancel is None:
        return await work

    task = asyncio.ensure_future(work)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    if task in done:
        return task.result()
    raise AbortedError()
