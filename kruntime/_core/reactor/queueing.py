"""
The per-object work queue with deduplication and delayed triggers.

Every object is identified by its :class:`~references.ObjectRef`.
An object is either idle (absent from the queue), or queued for
a reconciliation, or dispatched (taken for a reconciliation, but waiting
for a free slot to start), or running, or running and triggered again.
The object is never queued twice and never runs twice at the same time:
the triggers of a queued or dispatched object are merged into one reconciliation,
and the triggers of a running object are postponed until it is done.

The delayed triggers (requeues & retries) are armed as timers of the loop;
when fired, they act as the usual immediate triggers.
All state changes happen in the event loop's thread only.
"""
import asyncio
import collections
import enum
import logging

from kruntime._cogs.structs import references

logger = logging.getLogger(__name__)


class KeyState(enum.Enum):
    QUEUED = enum.auto()  # waiting for its turn
    DISPATCHED = enum.auto()  # taken, but not started yet; still sees the new triggers
    RUNNING = enum.auto()  # being reconciled
    RETRIGGERED = enum.auto()  # being reconciled, but must be reconciled again after that


class QueueClosed(Exception):
    """ Raised from :meth:`WorkQueue.get` when the queue is closed. """


class WorkQueue:

    def __init__(self) -> None:
        super().__init__()
        self._states: dict[references.ObjectRef, KeyState] = {}
        self._ready: collections.deque[references.ObjectRef] = collections.deque()
        self._timers: dict[references.ObjectRef, asyncio.TimerHandle] = {}
        self._changed = asyncio.Event()
        self._closed = False

    def __len__(self) -> int:
        return len(self._ready)

    def __contains__(self, ref: object) -> bool:
        return ref in self._states

    @property
    def closed(self) -> bool:
        return self._closed

    def get_state(self, ref: references.ObjectRef) -> KeyState | None:
        return self._states.get(ref)

    def get_deadline(self, ref: references.ObjectRef) -> float | None:
        """ The loop time when the delayed trigger fires, if armed. """
        timer = self._timers.get(ref)
        return timer.when() if timer is not None else None

    def trigger(self, ref: references.ObjectRef) -> None:
        """ Reconcile the object as soon as possible. Cancels its delayed trigger. """
        if self._closed:
            return

        timer = self._timers.pop(ref, None)
        if timer is not None:
            timer.cancel()

        match self._states.get(ref):
            case None:
                self._states[ref] = KeyState.QUEUED
                self._ready.append(ref)
                self._changed.set()
            case KeyState.RUNNING:
                self._states[ref] = KeyState.RETRIGGERED
            case KeyState.QUEUED | KeyState.DISPATCHED | KeyState.RETRIGGERED:
                pass

    def trigger_after(self, ref: references.ObjectRef, delay: float) -> None:
        """ Reconcile the object in some time. If already armed, the earliest time wins. """
        if self._closed:
            return

        loop = asyncio.get_running_loop()
        when = loop.time() + max(0.0, delay)
        timer = self._timers.get(ref)
        if timer is not None and timer.when() <= when:
            return
        if timer is not None:
            timer.cancel()
        self._timers[ref] = loop.call_at(when, self._fire, ref)

    def _fire(self, ref: references.ObjectRef) -> None:
        self._timers.pop(ref, None)
        self.trigger(ref)

    async def get(self) -> references.ObjectRef:
        """
        Wait for the next ready object and mark it as dispatched.

        The caller must call :meth:`start` when the object's reconciliation
        actually starts, and :meth:`done` when it is finished.
        """
        while not self._closed and not self._ready:
            self._changed.clear()
            await self._changed.wait()
        if self._closed:
            raise QueueClosed()
        ref = self._ready.popleft()
        self._states[ref] = KeyState.DISPATCHED
        return ref

    def start(self, ref: references.ObjectRef) -> None:
        """
        Mark the dispatched object as running: the new triggers are postponed from now on.

        The objects dispatched before the queue was closed are not started at all.
        """
        if self._closed:
            self._states.pop(ref, None)
            raise QueueClosed()
        state = self._states.get(ref)
        if state is not KeyState.DISPATCHED:
            raise RuntimeError(f"{ref} is started while not dispatched: {state!r}")
        self._states[ref] = KeyState.RUNNING

    def done(self, ref: references.ObjectRef) -> None:
        """ Mark the object as finished; requeue it if it was triggered meanwhile. """
        match self._states.get(ref):
            case KeyState.RUNNING:
                del self._states[ref]
            case KeyState.RETRIGGERED:
                if self._closed:
                    del self._states[ref]
                else:
                    self._states[ref] = KeyState.QUEUED
                    self._ready.append(ref)
                    self._changed.set()
            case state:
                raise RuntimeError(f"{ref} is marked as done while not running: {state!r}")

    def close(self) -> None:
        """ Cancel all the delayed triggers, discard the pending ones, wake up the waiters. """
        self._closed = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        while self._ready:
            del self._states[self._ready.popleft()]
        for ref, state in list(self._states.items()):
            if state is KeyState.DISPATCHED:  # never started, never done
                del self._states[ref]
        self._changed.set()
