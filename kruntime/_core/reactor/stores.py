"""
A local cache of the objects, as seen in the watch-stream.

The cache is split into two roles over the same shared state:
the :class:`Writer` is the only one who changes the state (by applying
the watch-events one by one), and the :class:`Store` is a read-only view
which can be given to any number of readers (e.g. the reconcilers).

The readers can live longer than the writer: the state remains readable
even after the writer has stopped (though it is not updated anymore).
"""
import asyncio
import logging
import threading
from collections.abc import MutableMapping

from kruntime._cogs.structs import bodies, references
from kruntime._core.reactor import watching

logger = logging.getLogger(__name__)


class _State:
    """ The shared internals of the writer & the readers. """

    def __init__(self, resource: references.Resource | None = None) -> None:
        super().__init__()
        self.resource = resource
        self.lock = threading.Lock()
        self.objs: MutableMapping[references.ObjectRef, bodies.RawBody] = {}
        self.unidentified = 0
        self.ready = asyncio.Event()


class Store:
    """
    A read-only view of the cached objects.

    All reads are consistent: a full re-listing is applied as a whole,
    so the readers see either the old state or the new one, never a mix.
    The store can be read from the synchronous reconcilers in threads too.
    """

    def __init__(self, state: _State) -> None:
        super().__init__()
        self._state = state

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} of {self._state.resource} with {len(self)} objects>'

    def __len__(self) -> int:
        return len(self._state.objs)

    def __contains__(self, ref: object) -> bool:
        return ref in self._state.objs

    def get(self, ref: references.ObjectRef) -> bodies.RawBody | None:
        return self._state.objs.get(ref)

    def keys(self) -> list[references.ObjectRef]:
        with self._state.lock:
            return list(self._state.objs)

    def state(self) -> list[bodies.RawBody]:
        """ A point-in-time copy of all the cached objects. """
        with self._state.lock:
            return list(self._state.objs.values())

    @property
    def unidentified(self) -> int:
        """
        How many objects were ignored so far because they could not be identified.

        Such objects (e.g. with no name) are never cached and never reconciled.
        """
        return self._state.unidentified

    def is_ready(self) -> bool:
        """ Whether the initial listing is fully loaded. """
        return self._state.ready.is_set()

    async def wait_until_ready(self) -> None:
        await self._state.ready.wait()


class Writer:
    """
    The only way to modify the cached objects: by applying the watch-events.

    The writer does not own the readers. It can be dropped, and the readers
    will keep the last known state.
    """

    def __init__(self, resource: references.Resource | None = None) -> None:
        super().__init__()
        self._state = _State(resource=resource)

    def as_reader(self) -> Store:
        return Store(self._state)

    def apply_event(self, event: watching.WatchEvent) -> None:
        state = self._state
        match event:
            case watching.Applied(obj=obj):
                ref = self._identify(obj)
                if ref is not None:
                    with state.lock:
                        state.objs[ref] = obj
            case watching.Deleted(obj=obj):
                ref = self._identify(obj)
                if ref is not None:
                    with state.lock:
                        state.objs.pop(ref, None)
            case watching.Restarted(objs=objs):
                # Build the new state aside, and swap it in one go, so that the readers
                # never see a partially applied listing.
                new_objs: dict[references.ObjectRef, bodies.RawBody] = {}
                for obj in objs:
                    ref = self._identify(obj)
                    if ref is not None:
                        new_objs[ref] = obj
                with state.lock:
                    state.objs = new_objs
                state.ready.set()
            case _:
                raise TypeError(f"Unsupported watch-event: {event!r}")

    def _identify(self, obj: bodies.RawBody) -> references.ObjectRef | None:
        try:
            return references.ObjectRef.from_body(obj, resource=self._state.resource)
        except references.IdentityError as e:
            with self._state.lock:
                self._state.unidentified += 1
            logger.error(f"Ignoring an object of {self._state.resource} without an identity "
                         f"(total ignored: {self._state.unidentified}): {e}")
            return None
