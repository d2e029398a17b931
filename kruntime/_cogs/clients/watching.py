"""
Low-level watch-streams of the API, as they are.

The state of the streaming (resource versions, re-listing, backoffs)
is maintained one level above: in :mod:`kruntime._core.reactor.watching`.
Here, one call is one HTTP connection; it ends when the server closes it
(usually, by the ``timeoutSeconds``) or when the client-side timeout is hit.
The connection and API errors are escalated to the caller as is.
"""
from collections.abc import AsyncIterator

import aiohttp

from kruntime._cogs.clients import api, fetching
from kruntime._cogs.configs import configuration
from kruntime._cogs.helpers import typedefs
from kruntime._cogs.structs import bodies, references


async def watch_objs(
        *,
        settings: configuration.RuntimeSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        labels: references.SelectorSpec = None,
        fields: references.SelectorSpec = None,
        since: str | None = None,
        logger: typedefs.Logger,
) -> AsyncIterator[bodies.RawInput]:
    """
    Watch objects of a specific resource type since a specific resource version.

    The events are yielded as they arrive, including the ``BOOKMARK``
    and ``ERROR`` events: interpreting them is the caller's duty.
    """
    params = fetching.build_params(labels=labels, fields=fields)
    params['watch'] = 'true'
    params['allowWatchBookmarks'] = 'true'
    if since is not None:
        params['resourceVersion'] = since
    if settings.watching.server_timeout is not None:
        params['timeoutSeconds'] = str(int(settings.watching.server_timeout))

    connect_timeout = (
        settings.watching.connect_timeout if settings.watching.connect_timeout is not None else
        settings.networking.connect_timeout if settings.networking.connect_timeout is not None else
        settings.networking.request_timeout
    )

    async for raw_input in api.stream(
        url=resource.get_url(namespace=namespace, params=params),
        logger=logger,
        settings=settings,
        timeout=aiohttp.ClientTimeout(
            total=settings.watching.client_timeout,
            sock_connect=connect_timeout,
        ),
    ):
        yield raw_input
