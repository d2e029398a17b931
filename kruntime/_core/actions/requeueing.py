"""
The reconcilers' results and the decisions on when to reconcile again.

A reconciler returns either ``None`` (nothing to do until the next change)
or :class:`Requeue` (reconcile again in some time even if nothing changes).
If it fails, the error policy decides when to retry, if at all.
"""
import dataclasses
import datetime
import math
from typing import Any, Protocol

from kruntime._cogs.configs import configuration
from kruntime._cogs.structs import references


@dataclasses.dataclass(frozen=True)
class Requeue:
    """ Reconcile the object again in ``after`` seconds (unless triggered earlier). """
    after: float

    def __post_init__(self) -> None:
        if not math.isfinite(self.after):
            raise ValueError(f"The requeueing delay must be a finite number: {self.after!r}")
        if self.after < 0:
            raise ValueError(f"The requeueing delay cannot be negative: {self.after!r}")


@dataclasses.dataclass(frozen=True)
class Outcome:
    """ A result of one reconciliation of one object, as reported by the controller. """
    ref: references.ObjectRef
    succeeded: bool
    error: BaseException | None = None
    requeue_after: float | None = None
    requeue_at: datetime.datetime | None = None


class ErrorPolicy(Protocol):
    def __call__(
            self,
            *,
            error: Exception,
            ref: references.ObjectRef,
            failures: int,
            settings: configuration.RuntimeSettings,
            **kwargs: Any,
    ) -> Requeue | None: ...


def exponential_backoff(
        *,
        failures: int,
        base: float,
        factor: float = 2.0,
        ceiling: float | None = None,
) -> float:
    """
    The delay after N consecutive failures: ``base * factor ** (N-1)``, capped.

    The first failure (``failures=1``) gets the base delay itself.
    """
    exponent = max(0, failures - 1)
    try:
        delay = base * factor ** exponent
    except OverflowError:
        delay = float('inf')
    return delay if ceiling is None else min(delay, ceiling)


def default_error_policy(
        *,
        failures: int,
        settings: configuration.RuntimeSettings,
        **_: Any,
) -> Requeue:
    return Requeue(after=exponential_backoff(
        failures=failures,
        base=settings.reconciling.error_backoff,
        factor=settings.reconciling.error_backoff_factor,
        ceiling=settings.reconciling.error_backoff_ceiling,
    ))
