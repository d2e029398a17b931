from typing import Any

from kruntime._cogs.clients import api, errors
from kruntime._cogs.configs import configuration
from kruntime._cogs.helpers import typedefs
from kruntime._cogs.structs import references


async def delete_obj(
        *,
        settings: configuration.RuntimeSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        logger: typedefs.Logger,
) -> Any | None:
    """
    Delete an object of specific kind; return the API's response.

    The response is either the object with the deletion timestamp set
    (if it has finalizers), or the ``Status`` of the deletion.

    Returns ``None`` if the object is absent already (HTTP 404),
    so that the cleanups can be repeated idempotently.
    """
    try:
        return await api.delete(
            url=resource.get_url(namespace=namespace, name=name),
            settings=settings,
            logger=logger,
        )
    except errors.APINotFoundError:
        return None
