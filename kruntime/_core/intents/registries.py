"""
A registry of the reconcilers, as declared with the decorators.

The global registry is populated by the ``kruntime.on`` decorators,
and is used by the runtime to construct and run one controller
per registered reconciler.
"""
import dataclasses
import functools
from collections.abc import Callable, Iterator, Mapping
from types import FunctionType, MethodType
from typing import Any

from kruntime._cogs.structs import references
from kruntime._core.actions import invocation, requeueing
from kruntime._core.reactor import controlling


@dataclasses.dataclass(frozen=True)
class ReconcilerRegistration:
    id: str
    fn: invocation.Invokable
    resource: references.Resource
    finalizer: str | None = None
    labels: references.SelectorSpec = None
    fields: references.SelectorSpec = None
    owns: tuple[references.Resource, ...] = ()
    watches: Mapping[references.Resource, controlling.Mapper] = dataclasses.field(default_factory=dict)
    error_policy: requeueing.ErrorPolicy | None = None


class ControllerRegistry:
    """ All the reconcilers to be run as controllers in one runtime. """

    def __init__(self) -> None:
        super().__init__()
        self._reconcilers: list[ReconcilerRegistration] = []

    def __len__(self) -> int:
        return len(self._reconcilers)

    def __iter__(self) -> Iterator[ReconcilerRegistration]:
        return iter(list(self._reconcilers))

    def append(self, registration: ReconcilerRegistration) -> None:
        if any(existing.id == registration.id for existing in self._reconcilers):
            raise ValueError(f"Reconciler {registration.id!r} is registered twice.")
        tokens = {existing.finalizer for existing in self._reconcilers if existing.finalizer}
        if registration.finalizer is not None and registration.finalizer in tokens:
            raise ValueError(f"Finalizer {registration.finalizer!r} is used by several reconcilers.")
        self._reconcilers.append(registration)


def generate_id(
        fn: Callable[..., Any],
        id: str | None,
) -> str:
    return id if id is not None else get_callable_id(fn)


def get_callable_id(c: Callable[..., Any]) -> str:
    """ Get an reasonably good id of any commonly used callable. """
    if c is None:
        raise ValueError("Cannot build a persistent id of None.")
    elif isinstance(c, functools.partial):
        return get_callable_id(c.func)
    elif hasattr(c, '__wrapped__'):  # @functools.wraps()
        return get_callable_id(getattr(c, '__wrapped__'))
    elif isinstance(c, FunctionType) and c.__name__ == '<lambda>':
        line = c.__code__.co_firstlineno
        path = c.__code__.co_filename
        return f'lambda:{path}:{line}'
    elif isinstance(c, (FunctionType, MethodType)):
        return str(getattr(c, '__qualname__', getattr(c, '__name__', repr(c))))
    else:
        raise ValueError(f"Cannot get id of {c!r}.")


_default_registry: ControllerRegistry | None = None


def get_default_registry() -> ControllerRegistry:
    """
    Get the default registry to be used by the decorators and the runtime,
    unless the explicit registry is provided to them.
    """
    global _default_registry
    if _default_registry is None:
        _default_registry = ControllerRegistry()
    return _default_registry


def set_default_registry(registry: ControllerRegistry) -> None:
    """
    Set the default registry to be used by the decorators and the runtime,
    unless the explicit registry is provided to them.
    """
    global _default_registry
    _default_registry = registry
