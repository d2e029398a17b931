"""
Helpers for the tasks of the runtime and of the controllers.

The runtime keeps a few long-living tasks (one per controller) and stops them
all together. The controllers spawn a task per reconciliation, at most a few
at a time, and drop or cancel them on exit. Only tasks are supported here,
not arbitrary awaitables: they are not only awaited, but also cancelled.
"""
import asyncio
import collections
from collections.abc import Callable, Collection, Coroutine
from typing import TYPE_CHECKING, Any

from kruntime._cogs.helpers import typedefs

# The tasks & futures are generic only in the type stubs, not at runtime.
if TYPE_CHECKING:
    Future = asyncio.Future[Any]
    Task = asyncio.Task[Any]
else:
    Future = asyncio.Future
    Task = asyncio.Task


def create_guarded_task(
        coro: Coroutine[Any, Any, Any],
        name: str,
        *,
        finishable: bool = False,
        cancellable: bool = False,
        logger: typedefs.Logger | None = None,
) -> Task:
    """
    Start a task that is expected to run until cancelled, and report if it does not.

    The failures are logged with tracebacks and re-raised. An exit is logged
    as a warning unless the task is ``finishable``. A cancellation is logged
    unless the task is ``cancellable`` (i.e. it is cancelled routinely).
    """
    title = name.capitalize()

    async def guarded() -> None:
        try:
            await coro
        except asyncio.CancelledError:
            if logger is not None and not cancellable:
                logger.debug(f"{title} is cancelled.")
            raise
        except Exception as e:
            if logger is not None:
                logger.exception(f"{title} has failed: {e}")
            raise
        if logger is not None and not finishable:
            logger.warning(f"{title} has finished unexpectedly.")

    return asyncio.create_task(guarded(), name=name)


async def wait(
        tasks: Collection[Task],
        *,
        timeout: float | None = None,
        return_when: str = asyncio.ALL_COMPLETED,
) -> tuple[set[Task], set[Task]]:
    """ Same as :func:`asyncio.wait`, but an empty collection is fine. """
    if not tasks:
        return set(), set()
    return await asyncio.wait(tasks, timeout=timeout, return_when=return_when)


async def stop(
        tasks: Collection[Task],
        *,
        title: str,
        quiet: bool = False,
        cancelled: bool = False,
        logger: typedefs.Logger | None = None,
) -> tuple[set[Task], set[Task]]:
    """
    Cancel the tasks and wait until they are all done, with no time limit.

    If the stopping itself is cancelled (e.g. by a second Ctrl+C),
    the tasks are left to finish their cancellation on their own.
    """
    title = title.capitalize()
    if not tasks:
        if logger is not None and not quiet:
            logger.debug(f"{title} tasks stopping is skipped: no tasks given.")
        return set(), set()

    for task in tasks:
        task.cancel()

    try:
        done, pending = await wait(tasks)
    except asyncio.CancelledError:
        if logger is not None:
            left = [task for task in tasks if not task.done()]
            logger.debug(f"{title} tasks stopping is interrupted; tasks left: {left!r}")
        raise

    if logger is not None and not quiet:
        why = 'at cancellation' if cancelled else 'normally'
        logger.debug(f"{title} tasks are stopped {why}: {len(done)} tasks.")
    return done, pending


def reraise(tasks: Collection[Task]) -> None:
    """ Re-raise the first failure of the finished tasks, if any; ignore the cancelled ones. """
    for task in tasks:
        if not task.cancelled() and task.exception() is not None:
            raise task.exception()  # type: ignore[misc]


class Scheduler:
    """
    Running coroutines in tasks, at most ``limit`` of them at a time.

    The controllers spawn every reconciliation here and forget it: the failures
    go to the ``exception_handler`` (the controller's outcome stream).
    The excess coroutines wait in the order of spawning and are started
    only when a slot is free, so that the tasks' reprs show the real coroutines.
    """

    def __init__(
            self,
            *,
            limit: int | None = None,
            exception_handler: Callable[[BaseException], None] | None = None,
    ) -> None:
        super().__init__()
        self._limit = limit
        self._exception_handler = exception_handler
        self._closed = False
        self._pending: collections.deque[tuple[Coroutine[Any, Any, Any], str | None]] = collections.deque()
        self._running: set[Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    def empty(self) -> bool:
        """ Check if the scheduler has nothing to do. """
        return not self._pending and not self._running

    def running(self) -> int:
        """ The number of coroutines currently running as tasks. """
        return len(self._running)

    async def wait(self) -> None:
        """ Wait until all the spawned coroutines are done. """
        await self._idle.wait()

    def spawn(
            self,
            coro: Coroutine[Any, Any, Any],
            *,
            name: str | None = None,
    ) -> None:
        """
        Run the coroutine as soon as there is a free slot.

        A coroutine given to a closed scheduler is closed unstarted,
        so that it does not warn about never being awaited.
        """
        if self._closed:
            coro.close()
            raise RuntimeError("Cannot spawn into a closed scheduler.")
        self._pending.append((coro, name))
        self._start_pending()

    async def close(
            self,
            *,
            timeout: float | None = 0,
    ) -> None:
        """
        Stop accepting new coroutines and finish the existing ones.

        The waiting coroutines are dropped unstarted. The running ones
        are given ``timeout`` seconds to finish on their own (``None``
        for no limit), and are cancelled afterwards.
        """
        self._closed = True
        while self._pending:
            coro, _ = self._pending.popleft()
            coro.close()
        self._update_idle()

        if self._running and (timeout is None or timeout > 0):
            await wait(set(self._running), timeout=timeout)
        for task in self._running:
            task.cancel()
        await self.wait()

    def _start_pending(self) -> None:
        while self._pending and (self._limit is None or len(self._running) < self._limit):
            coro, name = self._pending.popleft()
            task = asyncio.create_task(coro, name=name)
            task.add_done_callback(self._task_done)
            self._running.add(task)
        self._update_idle()

    def _task_done(self, task: Task) -> None:
        self._running.discard(task)

        # Retrieving the exception also stops asyncio from complaining that it is never retrieved.
        exc = None if task.cancelled() else task.exception()
        if exc is not None and self._exception_handler is not None:
            self._exception_handler(exc)

        if not self._closed:
            self._start_pending()
        self._update_idle()

    def _update_idle(self) -> None:
        if self.empty():
            self._idle.set()
        else:
            self._idle.clear()
