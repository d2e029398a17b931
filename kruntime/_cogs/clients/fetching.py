from collections.abc import Collection

from kruntime._cogs.clients import api
from kruntime._cogs.configs import configuration
from kruntime._cogs.helpers import typedefs
from kruntime._cogs.structs import bodies, references


def build_params(
        *,
        labels: references.SelectorSpec = None,
        fields: references.SelectorSpec = None,
) -> dict[str, str]:
    params: dict[str, str] = {}
    label_selector = references.build_selector(labels)
    field_selector = references.build_selector(fields)
    if label_selector:
        params['labelSelector'] = label_selector
    if field_selector:
        params['fieldSelector'] = field_selector
    return params


async def list_objs(
        *,
        settings: configuration.RuntimeSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        labels: references.SelectorSpec = None,
        fields: references.SelectorSpec = None,
        logger: typedefs.Logger,
) -> tuple[Collection[bodies.RawBody], str | None]:
    """
    List the objects of specific resource type.

    The cluster-scoped call is used in two cases:

    * The resource itself is cluster-scoped, and namespacing makes not sense.
    * The runtime serves all namespaces for the namespaced resource.

    Otherwise, the namespace-scoped call is used:

    * The resource is namespace-scoped AND the runtime is namespace-restricted.

    The list's items have no ``kind`` & ``apiVersion`` in the API responses,
    so they are restored from the list's own ones (``ConfigMapList`` -> ``ConfigMap``).
    """
    rsp = await api.get(
        url=resource.get_url(namespace=namespace, params=build_params(labels=labels, fields=fields)),
        logger=logger,
        settings=settings,
    )

    items: list[bodies.RawBody] = []
    resource_version = rsp.get('metadata', {}).get('resourceVersion', None)
    for item in rsp.get('items', []):
        if 'kind' in rsp:
            item.setdefault('kind', rsp['kind'][:-4] if rsp['kind'][-4:] == 'List' else rsp['kind'])
        if 'apiVersion' in rsp:
            item.setdefault('apiVersion', rsp['apiVersion'])
        items.append(item)

    return items, resource_version
