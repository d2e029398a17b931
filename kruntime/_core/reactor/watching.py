"""
Turning the list+watch API calls into one continuous stream of watch-events.

The remote API offers two calls: the listing (a full state at some resource
version) and the watching (the changes since some resource version).
The watch connections are closed by the server from time to time; the resource
versions expire after a few minutes; the server can fail or throttle us.

Here, all of this is hidden from the consumers, who only see an infinite
stream of :class:`Applied`, :class:`Deleted`, and :class:`Restarted` events.
A :class:`Restarted` event carries the full list of the objects and means
"forget everything you know, this is the whole current state".
"""
import asyncio
import contextlib
import dataclasses
import enum
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Union, cast

import aiohttp

from kruntime._cogs.clients import errors, fetching, watching
from kruntime._cogs.configs import configuration
from kruntime._cogs.structs import bodies, references
from kruntime._core.actions import requeueing

logger = logging.getLogger(__name__)

# Failures of the listing & watching which are retried instead of escalated.
RETRYABLE_ERRORS = (
    errors.APIError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
)


@dataclasses.dataclass(frozen=True)
class Applied:
    """ An object is created or modified. """
    obj: bodies.RawBody


@dataclasses.dataclass(frozen=True)
class Deleted:
    """ An object is deleted; the body is its last known state. """
    obj: bodies.RawBody


@dataclasses.dataclass(frozen=True)
class Restarted:
    """ The stream is restarted; these are all the objects existing now. """
    objs: Sequence[bodies.RawBody]


WatchEvent = Union[Applied, Deleted, Restarted]


class WatcherState(enum.Enum):
    INITIALIZING = enum.auto()  # listing the objects
    STREAMING = enum.auto()  # watching since the last known resource version


class WatchError(Exception):
    """ An ``ERROR`` event in the watch-stream other than the expired resource version. """


async def watch_events(
        *,
        settings: configuration.RuntimeSettings,
        resource: references.Resource,
        namespace: references.Namespace = None,
        labels: references.SelectorSpec = None,
        fields: references.SelectorSpec = None,
) -> AsyncIterator[WatchEvent]:
    """
    Stream the watch-events of a resource infinitely.

    This routine never ends on its own. If the listing or watching fails,
    it is retried with a backoff, and a new listing leads to a new
    :class:`Restarted` event. It only exits when the consumer closes it
    or is cancelled.
    """
    where = f'in {namespace!r}' if namespace is not None else 'cluster-wide'
    state = WatcherState.INITIALIZING
    resource_version: str | None = None
    failures = 0

    logger.debug(f"Starting the watch-stream for {resource} {where}.")
    try:
        while True:
            try:
                match state:
                    case WatcherState.INITIALIZING:
                        objs, resource_version = await fetching.list_objs(
                            settings=settings,
                            resource=resource,
                            namespace=namespace,
                            labels=labels,
                            fields=fields,
                            logger=logger,
                        )
                        failures = 0
                        state = WatcherState.STREAMING
                        yield Restarted(objs=list(objs))

                    case WatcherState.STREAMING:
                        stream = watching.watch_objs(
                            settings=settings,
                            resource=resource,
                            namespace=namespace,
                            labels=labels,
                            fields=fields,
                            since=resource_version,
                            logger=logger,
                        )
                        async with contextlib.aclosing(stream):
                            async for raw_input in stream:
                                raw_type = raw_input.get('type')
                                raw_object = raw_input.get('object', {})

                                # "410 Gone" is for the "resource version too old" error.
                                # The resource versions are lost by the server after a few minutes.
                                # This is normal, so we re-list quietly.
                                raw_code = cast(bodies.RawError, raw_object).get('code')
                                if raw_type == 'ERROR' and raw_code == 410:
                                    logger.debug(f"Restarting the watch-stream for {resource} {where}.")
                                    state = WatcherState.INITIALIZING
                                    break

                                if raw_type == 'ERROR':
                                    raise WatchError(f"Error in the watch-stream: {raw_object}")

                                # Keep the latest seen resource version for continuation on disconnects.
                                body = cast(bodies.RawBody, raw_object)
                                resource_version = bodies.get_resource_version(body) or resource_version

                                if raw_type == 'BOOKMARK':
                                    pass
                                elif raw_type in ['ADDED', 'MODIFIED']:
                                    yield Applied(obj=body)
                                elif raw_type == 'DELETED':
                                    yield Deleted(obj=body)
                                else:
                                    logger.warning(f"Ignoring an unsupported event type: {raw_input!r}")

                        # A regular end of the connection: continue from the last resource version.
                        if state == WatcherState.STREAMING:
                            await asyncio.sleep(settings.watching.reconnect_backoff)

            except (WatchError, *RETRYABLE_ERRORS) as e:
                failures += 1
                delay = requeueing.exponential_backoff(
                    failures=failures,
                    base=settings.watching.error_backoff,
                    ceiling=settings.watching.error_backoff_ceiling,
                )
                if isinstance(e, errors.APITooManyRequestsError) and e.retry_after is not None:
                    delay = max(delay, e.retry_after)
                logger.error(f"Watching for {resource} {where} has failed; "
                             f"re-listing in {delay}s: {e!r}")
                state = WatcherState.INITIALIZING
                await asyncio.sleep(delay)
    finally:
        logger.debug(f"Stopping the watch-stream for {resource} {where}.")
