"""
Scheduling helpers

Everything in the service that runs "later" goes through a Scheduler:
- one-shot timers (e.g. clearing a finished prediction from the overlay)
- fire-and-forget tasks (e.g. registering EventSub subscriptions)

Both return handles that can be cancelled. Tests swap in a scheduler with a
virtual clock so timers fire deterministically.
"""

import asyncio
from typing import Callable, Coroutine, Protocol, Set


class Cancellable(Protocol):
    def cancel(self) -> object: ...

    def cancelled(self) -> bool: ...


class Scheduler:
    """Default scheduler backed by the running asyncio event loop."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        """Run `callback` once after `delay` seconds on the running loop."""
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, callback)

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        """
        Start a coroutine without awaiting it.

        A strong reference is kept until the task finishes so it cannot be
        garbage collected mid-flight.
        """
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def aclose(self) -> None:
        """Cancel and drain every task spawned through this scheduler."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
