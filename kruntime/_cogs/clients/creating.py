from kruntime._cogs.clients import api, errors
from kruntime._cogs.configs import configuration
from kruntime._cogs.helpers import typedefs
from kruntime._cogs.structs import bodies, references


async def create_obj(
        *,
        settings: configuration.RuntimeSettings,
        resource: references.Resource,
        namespace: references.Namespace = None,
        name: str | None = None,
        body: bodies.RawBody | None = None,
        logger: typedefs.Logger,
) -> bodies.RawBody | None:
    """
    Create an object of specific kind; return the created object.

    The namespace & name, if given, are put into the body's metadata
    unless already there. The original body is not modified.

    Returns ``None`` if the object exists already (HTTP 409),
    so that the children can be created idempotently and patched otherwise.
    """
    payload = dict(body or {})
    metadata = dict(payload.get('metadata', {}))
    if namespace is not None:
        metadata.setdefault('namespace', namespace)
    if name is not None:
        metadata.setdefault('name', name)
    payload['metadata'] = metadata

    try:
        return await api.post(
            url=resource.get_url(namespace=namespace),
            payload=payload,
            settings=settings,
            logger=logger,
        )
    except errors.APIConflictError:
        return None
