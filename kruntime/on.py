"""
The decorators for the reconcilers. Usually used as::

    import kruntime

    @kruntime.on.reconcile('', 'v1', 'configmaps', kind='ConfigMap')
    def reconcile_configmap(body, logger, **kwargs):
        pass

This module is a part of the framework's public interface.
"""
from collections.abc import Callable, Collection, Mapping
from typing import Any

from kruntime._cogs.structs import references
from kruntime._core.actions import requeueing
from kruntime._core.intents import registries
from kruntime._core.reactor import controlling

ReconcilerFn = Callable[..., Any]
ReconcilerDecorator = Callable[[ReconcilerFn], ReconcilerFn]


def reconcile(
        # Resource type:
        group: str,
        version: str,
        plural: str,
        *,
        kind: str | None = None,
        namespaced: bool = True,
        # Reconciler's behaviour:
        id: str | None = None,
        finalizer: str | None = None,
        error_policy: requeueing.ErrorPolicy | None = None,
        # Resource objects:
        labels: references.SelectorSpec = None,
        fields: references.SelectorSpec = None,
        owns: Collection[references.Resource] = (),
        watches: Mapping[references.Resource, controlling.Mapper] | None = None,
        # Runtime:
        registry: registries.ControllerRegistry | None = None,
) -> ReconcilerDecorator:
    """
    Register a reconciler for the objects of a resource.

    With ``finalizer=`` (a unique token, e.g. ``"example.com/cleanup"``),
    the reconciler is wrapped into the finalizer protocol and gets
    the ``event=`` kwarg (:class:`kruntime.Apply` or :class:`kruntime.Cleanup`).
    """
    if finalizer is not None and not finalizer:
        raise ValueError("The finalizer token must be a non-empty string.")

    def decorator(
            fn: ReconcilerFn,
    ) -> ReconcilerFn:
        real_registry = registry if registry is not None else registries.get_default_registry()
        real_id = registries.generate_id(fn=fn, id=id)
        resource = references.Resource(
            group=group, version=version, plural=plural,
            kind=kind, namespaced=namespaced,
        )
        real_registry.append(registries.ReconcilerRegistration(
            id=real_id,
            fn=fn,
            resource=resource,
            finalizer=finalizer,
            labels=labels,
            fields=fields,
            owns=tuple(owns),
            watches=dict(watches or {}),
            error_policy=error_policy,
        ))
        return fn
    return decorator
