"""
References to the resource kinds and to the individual objects.

A :class:`Resource` is what is needed to talk to the API: the URL parts.
An :class:`ObjectRef` is what identifies an object locally: the cache keys,
the work queue keys, the log prefixes. It is never sent to the API.
"""
import dataclasses
import urllib.parse
from collections.abc import Iterator, Mapping

from kruntime._cogs.structs import bodies

# A namespace reference usable in the API calls. `None` means cluster-wide API calls.
Namespace = str | None

# Label/field selectors: either pre-rendered strings, or mappings to be rendered.
# In the mappings, `None` values mean "the label exists" (with no specific value).
SelectorSpec = str | Mapping[str, str | None] | None


class IdentityError(Exception):
    """ Raised when an object lacks the fields required to identify it. """


@dataclasses.dataclass(frozen=True, eq=False, repr=False)
class Resource:
    """
    A reference to a very specific custom or built-in resource kind.

    It is used to form the API URLs. Generally, the API only needs
    an API group, an API version, and a plural name of the resource.
    All other names are remembered for object identities, for logging,
    and for informational purposes.
    """

    group: str
    """
    The resource's API group; e.g. ``"example.com"``, ``"apps"``, ``"batch"``.
    For Core v1 API resources, an empty string: ``""``.
    """

    version: str
    """
    The resource's API version; e.g. ``"v1"``, ``"v1beta1"``, etc.
    """

    plural: str
    """
    The resource's plural name; e.g. ``"configmaps"``, ``"examples"``.
    It is used as an API endpoint, together with API group & version.
    """

    kind: str | None = None
    """
    The resource's kind (as in YAML files); e.g. ``"ConfigMap"``.
    If not set, the kind is taken from the objects as they arrive.
    """

    namespaced: bool = True
    """
    Whether the resource is namespaced (``True``) or cluster-scoped (``False``).
    """

    subresources: frozenset[str] = frozenset()
    """
    The resource's subresources, if defined; e.g. ``{"status", "scale"}``.
    """

    def __hash__(self) -> int:
        return hash((self.group, self.version, self.plural))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Resource):
            self_tuple = (self.group, self.version, self.plural)
            other_tuple = (other.group, other.version, other.plural)
            return self_tuple == other_tuple
        else:
            return NotImplemented

    def __repr__(self) -> str:
        plural_main, *subs = self.plural.split('/')
        name_text = f'{plural_main}.{self.version}.{self.group}'.strip('.')
        subs_text = f'/{"/".join(subs)}' if subs else ''
        return f'{name_text}{subs_text}'

    def __iter__(self) -> Iterator[str]:
        return iter((self.group, self.version, self.plural))

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}' if self.group else self.version

    def get_url(
            self,
            *,
            server: str | None = None,
            namespace: Namespace = None,
            name: str | None = None,
            subresource: str | None = None,
            params: Mapping[str, str] | None = None,
    ) -> str:
        """
        Build a URL to be used with the API.

        If the namespace is not set, a cluster-wide URL is returned.
        For cluster-scoped resources, the namespace must not be set.

        If the name is not set, the URL for the resource list is returned.
        Otherwise (if set), the URL for the individual resource is returned.

        Params go to the query parameters (``?param1=value1&param2=value2...``).
        """
        if subresource is not None and name is None:
            raise ValueError("Subresources can be used only with specific resources by their name.")
        if not self.namespaced and namespace is not None:
            raise ValueError("Specific namespaces are not supported for cluster-scoped resources.")
        if self.namespaced and namespace is None and name is not None:
            raise ValueError("Specific namespaces are required for specific namespaced resources.")

        parts: list[str | None] = [
            '/api' if self.group == '' and self.version == 'v1' else '/apis',
            self.group,
            self.version,
            'namespaces' if self.namespaced and namespace is not None else None,
            namespace if self.namespaced and namespace is not None else None,
            self.plural,
            name,
            subresource,
        ]

        query = urllib.parse.urlencode(params, encoding='utf-8') if params else ''
        path = '/'.join([part for part in parts if part])
        url = path + ('?' if query else '') + query
        return url if server is None else server.rstrip('/') + '/' + url.lstrip('/')


@dataclasses.dataclass(frozen=True, order=True)
class ObjectRef:
    """
    An identity of an object: two objects with the same reference are
    the same logical entity regardless of their content or versions.
    """
    kind: str
    name: str
    namespace: str | None = None

    def __str__(self) -> str:
        where = f'{self.namespace}/{self.name}' if self.namespace else self.name
        return f'{self.kind} {where}'

    @classmethod
    def from_body(
            cls,
            body: bodies.RawBody,
            *,
            resource: Resource | None = None,
    ) -> "ObjectRef":
        """
        Identify an object by its body. Fail if the body has no name.

        The kind is taken from the body first, as it is delivered by the API,
        then from the resource (for partial bodies, e.g. list items).
        """
        meta = body.get('metadata', {})
        name = meta.get('name')
        kind = body.get('kind') or (resource.kind or resource.plural if resource else None)
        if not name:
            raise IdentityError(f"The object has no name: {meta!r}")
        if not kind:
            raise IdentityError(f"The object has no kind: {name!r}")
        return cls(kind=kind, name=name, namespace=meta.get('namespace') or None)


def build_selector(spec: SelectorSpec) -> str | None:
    """
    Render a label/field selector for the API query from a mapping or a string.

    ``{'app': 'x', 'tier': None}`` becomes ``app=x,tier`` (i.e. "tier" exists).
    """
    if spec is None or isinstance(spec, str):
        return spec or None
    parts = [key if val is None else f'{key}={val}' for key, val in spec.items()]
    return ','.join(parts) or None
