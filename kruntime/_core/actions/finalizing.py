"""
The finalizer protocol: guarantee a cleanup before the object is deleted.

A reconciler wrapped with :func:`finalizer` marks every object it sees with
its own finalizer token, so that the API does not delete the object until
the token is removed. When the deletion is requested, the wrapped function
is invoked to clean up, and only if it succeeds, the token is removed,
and the API proceeds with the actual deletion.

The state of the protocol is not stored anywhere: it is derived from
the object every time, so that it survives the restarts of the process.
"""
import dataclasses
import datetime
import enum
from collections.abc import Callable
from typing import Any, Union

from kruntime._cogs.clients import patching
from kruntime._cogs.configs import configuration
from kruntime._cogs.helpers import typedefs
from kruntime._cogs.structs import bodies, finalizers, patches, references
from kruntime._core.actions import invocation


@dataclasses.dataclass(frozen=True)
class Apply:
    """ The object exists and must be brought to its desired state. """
    body: bodies.RawBody


@dataclasses.dataclass(frozen=True)
class Cleanup:
    """ The object is being deleted; the external state must be released. """
    body: bodies.RawBody


FinalizerEvent = Union[Apply, Cleanup]


class FinalizerState(enum.Enum):
    ADDING = enum.auto()  # not deleted, not yet marked with our token
    APPLYING = enum.auto()  # not deleted, marked with our token
    CLEANING = enum.auto()  # deleted, still marked with our token
    RELEASED = enum.auto()  # deleted, our token is removed (or was never there)

    @classmethod
    def from_body(cls, body: bodies.RawBody, token: str) -> "FinalizerState":
        deleting = finalizers.is_deletion_ongoing(body)
        blocking = finalizers.is_deletion_blocked(body, token)
        match deleting, blocking:
            case False, False:
                return cls.ADDING
            case False, True:
                return cls.APPLYING
            case True, True:
                return cls.CLEANING
            case _:
                return cls.RELEASED


def finalizer(
        fn: invocation.Invokable,
        *,
        token: str,
) -> Callable[..., Any]:
    """
    Wrap a reconciler into the finalizer protocol under a specific token.

    The wrapped function gets the ``event=`` kwarg: either :class:`Apply`
    or :class:`Cleanup` with the object's body; all other kwargs are passed
    as they were given to the reconciler. The token must be unique
    per controller, e.g. ``"example.com/cleanup"``.
    """
    if not token:
        raise ValueError("The finalizer token must be a non-empty string.")

    async def reconciler(
            *,
            body: bodies.RawBody,
            resource: references.Resource,
            settings: configuration.RuntimeSettings,
            logger: typedefs.Logger,
            **kwargs: Any,
    ) -> Any:
        kwargs.update(body=body, resource=resource, settings=settings, logger=logger)
        state = FinalizerState.from_body(body, token)
        match state:
            case FinalizerState.ADDING:
                logger.debug(f"Adding the finalizer {token!r}.")
                await _patch(body=body, resource=resource, settings=settings, logger=logger,
                             patch=finalizers.block_deletion(body, token))
                return None

            case FinalizerState.APPLYING:
                return await invocation.invoke(fn, settings=settings,
                                               kwargs=dict(kwargs, event=Apply(body)))

            case FinalizerState.CLEANING:
                deleted = finalizers.get_deletion_time(body)
                if deleted is not None:
                    now = datetime.datetime.now(datetime.timezone.utc)
                    ago = (now - deleted).total_seconds()
                    logger.info(f"Cleaning up: the deletion was requested {ago:.1f}s ago.")
                else:
                    logger.info("Cleaning up: the deletion is requested.")

                # If this fails, the token stays, and the object is not released.
                result = await invocation.invoke(fn, settings=settings,
                                                 kwargs=dict(kwargs, event=Cleanup(body)))

                logger.debug(f"Removing the finalizer {token!r}.")
                await _patch(body=body, resource=resource, settings=settings, logger=logger,
                             patch=finalizers.allow_deletion(body, token))
                return result

            case FinalizerState.RELEASED:
                return None

    return reconciler


async def _patch(
        *,
        body: bodies.RawBody,
        patch: patches.JSONPatch,
        resource: references.Resource,
        settings: configuration.RuntimeSettings,
        logger: typedefs.Logger,
) -> None:
    meta = body.get('metadata', {})
    name = meta.get('name')
    namespace = meta.get('namespace') or None
    if not name:
        raise references.IdentityError("The object has no name; it cannot be patched.")
    if resource.namespaced and namespace is None:
        raise references.IdentityError(f"The object {name!r} has no namespace; "
                                       f"it cannot be patched.")

    # None means the object is gone: nothing to block or release anymore.
    patched = await patching.patch_obj(
        settings=settings,
        resource=resource,
        namespace=namespace if resource.namespaced else None,
        name=name,
        patch=patch,
        logger=logger,
    )
    if patched is None:
        logger.debug("The object is already gone; the finalizer is not needed.")
