import asyncio
import contextlib
import logging
from unittest.mock import AsyncMock

import pytest

from kruntime._cogs.clients import fetching, watching


@pytest.fixture()
def list_mock(mocker):
    """ A listing of no objects at resourceVersion 100, unless configured otherwise. """
    return mocker.patch.object(fetching, 'list_objs', new_callable=AsyncMock,
                               return_value=([], '100'))


@pytest.fixture()
def stream(mocker):
    """
    Simulate the watch-streams: one batch per one watch-request.

    Every item is either a raw event to be yielded, or an exception to be raised.
    Once the batches are depleted, the watch-requests never end (as if idle).
    """
    batches = []

    async def streamer(batch):
        if batch is None:
            await asyncio.Event().wait()
        for item in batch:
            if isinstance(item, BaseException):
                raise item
            yield item

    def side_effect(**_):
        return streamer(batches.pop(0) if batches else None)

    def feed(*new_batches):
        batches.extend(new_batches)

    mock = mocker.patch.object(watching, 'watch_objs', side_effect=side_effect)
    mock.feed = feed
    return mock


@pytest.fixture()
def collect():
    """ Consume the first few events of a never-ending stream and close it. """
    async def collect_fn(events, n):
        result = []
        async with contextlib.aclosing(events):
            async for event in events:
                result.append(event)
                if len(result) >= n:
                    break
        return result
    return collect_fn


@pytest.fixture(autouse=True)
def _debug_logs(caplog):
    caplog.set_level(logging.DEBUG)
