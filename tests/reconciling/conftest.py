import asyncio
import collections
import contextlib
import logging

import pytest

from kruntime._cogs.structs.references import Resource
from kruntime._core.reactor import watching


@pytest.fixture()
def child_resource():
    return Resource('', 'v1', 'configmaps', kind='ConfigMap', namespaced=True)


@pytest.fixture()
def streams(mocker):
    """
    Simulate the infinite watch-event streams, one per resource.

    The events (or exceptions to raise) are put to ``streams.queues[resource]``,
    and are delivered to the controller's watchers in the same order.
    """
    queues = collections.defaultdict(asyncio.Queue)

    async def fake_watch_events(*, resource, **_):
        queue = queues[resource]
        while True:
            event = await queue.get()
            if isinstance(event, BaseException):
                raise event
            yield event

    mock = mocker.patch.object(watching, 'watch_events', side_effect=fake_watch_events)
    mock.queues = queues
    return mock


@pytest.fixture()
def consume():
    """ Run the controller until a few outcomes are received, then stop it. """
    async def consume_fn(controller, reconciler, n, **kwargs):
        outcomes = []
        stream = controller.run(reconciler, **kwargs)
        async with contextlib.aclosing(stream):
            async for outcome in stream:
                outcomes.append(outcome)
                if len(outcomes) >= n:
                    break
        return outcomes
    return consume_fn


@pytest.fixture(autouse=True)
def _debug_logs(caplog):
    caplog.set_level(logging.DEBUG)
