from kruntime._cogs.clients import api, errors
from kruntime._cogs.configs import configuration
from kruntime._cogs.helpers import typedefs
from kruntime._cogs.structs import bodies, patches, references


async def patch_obj(
        *,
        settings: configuration.RuntimeSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str | None,
        patch: patches.Patch,
        logger: typedefs.Logger,
) -> bodies.RawBody | None:
    """
    Patch a resource of specific kind.

    Unlike the object listing, the namespaced call is always
    used for the namespaced resources, even if the runtime serves
    the whole cluster (i.e. is not namespace-restricted).

    A mapping is sent as a JSON merge-patch, a list as a JSON patch.
    An empty patch is not sent at all, and an empty body is returned.

    Returns ``None`` if the underlying object is absent, as detected by trying
    to patch it and failing with HTTP 404. This can happen if the object was
    deleted in the reconcilers or externally during the processing,
    so that the runtime was unaware of these changes until the last moment.
    """
    if not patch:
        return bodies.RawBody()

    try:
        return await api.patch(
            url=resource.get_url(namespace=namespace, name=name),
            headers={'Content-Type': patches.get_content_type(patch)},
            payload=patch,
            settings=settings,
            logger=logger,
        )
    except errors.APINotFoundError:
        return None
