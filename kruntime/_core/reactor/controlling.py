"""
The controller: watch the objects, reconcile them when they change.

One controller serves one primary resource: it watches its objects into
its own store, and triggers the reconciliation of every changed object.
Optionally, it also watches the secondary resources, and triggers
the primary objects which own them (or are mapped from them by a function).

The reconciliations themselves are decoupled from the events:
an object is reconciled with its latest known state from the store,
not with the state of the event which triggered it. So, many events
of the same object are squashed into one reconciliation if they arrive
while the object waits for its turn or while it is being reconciled.

Every finished reconciliation yields an :class:`~requeueing.Outcome`
from :meth:`Controller.run`, which is the only way to run the controller::

    controller = Controller(resource, namespace='default')
    async for outcome in controller.run(reconcile):
        print(outcome)
"""
import asyncio
import contextlib
import dataclasses
import datetime
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from typing import Any

from kruntime._cogs.aiokits import aiotasks
from kruntime._cogs.configs import configuration
from kruntime._cogs.structs import bodies, references
from kruntime._core.actions import invocation, loggers, requeueing
from kruntime._core.reactor import queueing, reflecting, stores, watching

logger = logging.getLogger(__name__)

# A function to map a secondary object to the primary objects to be reconciled.
Mapper = Callable[[bodies.RawBody], Iterable[references.ObjectRef]]


@dataclasses.dataclass(frozen=True)
class Secondary:
    resource: references.Resource
    mapper: Mapper
    labels: references.SelectorSpec = None
    fields: references.SelectorSpec = None


def owners_mapper(resource: references.Resource) -> Mapper:
    """
    Map the objects to their owners of the specified resource (in the same namespace).
    """
    kind = resource.kind
    if not kind:
        raise ValueError(f"The owners' resource must have a kind to match against: {resource!r}")

    def mapper(body: bodies.RawBody) -> Iterable[references.ObjectRef]:
        meta = body.get('metadata', {})
        namespace = meta.get('namespace') or None
        for owner in meta.get('ownerReferences', []):
            if (owner.get('kind') == kind and owner.get('name') and
                    owner.get('apiVersion', resource.api_version) == resource.api_version):
                yield references.ObjectRef(
                    kind=kind,
                    name=owner['name'],
                    namespace=namespace if resource.namespaced else None,
                )

    return mapper


class Controller:
    """
    A reconciliation loop for one resource, optionally with secondary resources.

    The controller is configured before it runs, and is run only once.
    The store is available from the very beginning, but is filled only
    when the controller runs (see :meth:`stores.Store.wait_until_ready`).
    """

    def __init__(
            self,
            resource: references.Resource,
            *,
            namespace: references.Namespace = None,
            labels: references.SelectorSpec = None,
            fields: references.SelectorSpec = None,
            settings: configuration.RuntimeSettings | None = None,
    ) -> None:
        super().__init__()
        self.resource = resource
        self.namespace = namespace if resource.namespaced else None
        self.labels = labels
        self.fields = fields
        self.settings = settings if settings is not None else configuration.RuntimeSettings()
        self.secondaries: list[Secondary] = []
        self._writer = stores.Writer(resource=resource)
        self._started = False

    def __repr__(self) -> str:
        where = f'in {self.namespace!r}' if self.namespace is not None else 'cluster-wide'
        return f'<{self.__class__.__name__} for {self.resource} {where}>'

    @property
    def store(self) -> stores.Store:
        return self._writer.as_reader()

    def owns(
            self,
            resource: references.Resource,
            *,
            labels: references.SelectorSpec = None,
            fields: references.SelectorSpec = None,
    ) -> "Controller":
        """ Reconcile the primary objects when the objects they own are changed. """
        return self.watches(resource, owners_mapper(self.resource), labels=labels, fields=fields)

    def watches(
            self,
            resource: references.Resource,
            mapper: Mapper,
            *,
            labels: references.SelectorSpec = None,
            fields: references.SelectorSpec = None,
    ) -> "Controller":
        """ Reconcile the primary objects as mapped from the changed secondary objects. """
        if self._started:
            raise RuntimeError("The controller is already running; it cannot be extended.")
        self.secondaries.append(Secondary(resource=resource, mapper=mapper,
                                          labels=labels, fields=fields))
        return self

    async def run(
            self,
            reconciler: invocation.Invokable,
            *,
            error_policy: requeueing.ErrorPolicy | None = None,
            memo: Any = None,
    ) -> AsyncIterator[requeueing.Outcome]:
        """
        Run the controller and stream the outcomes of the reconciliations.

        The controller runs as long as the outcomes are consumed. Once the
        consumer closes the stream (or is cancelled), the watchers are stopped,
        the running reconciliations are given some time to finish
        (``settings.reconciling.exit_timeout``), and are cancelled after that.
        The queued but not yet started reconciliations are discarded.

        The unexpected errors of the controller itself (not of the reconcilers)
        are re-raised to the consumer.
        """
        if self._started:
            raise RuntimeError("The controller can be run only once.")
        self._started = True

        outcomes: asyncio.Queue[requeueing.Outcome | BaseException] = asyncio.Queue()
        failures: dict[references.ObjectRef, int] = {}
        queue = queueing.WorkQueue()
        scheduler = aiotasks.Scheduler(limit=self.settings.reconciling.concurrency,
                                       exception_handler=outcomes.put_nowait)

        # If the watchers or the dispatcher fail, escalate to the consumer of the outcomes.
        def escalate(task: aiotasks.Task) -> None:
            if not task.cancelled() and task.exception() is not None:
                outcomes.put_nowait(task.exception())

        tasks: list[aiotasks.Task] = []
        tasks.append(asyncio.create_task(
            self._watch_primary(queue=queue),
            name=f"primary watcher of {self!r}"))
        for secondary in self.secondaries:
            tasks.append(asyncio.create_task(
                self._watch_secondary(queue=queue, secondary=secondary),
                name=f"secondary watcher for {secondary.resource} of {self!r}"))
        tasks.append(asyncio.create_task(
            self._dispatch(
                queue=queue,
                scheduler=scheduler,
                reconciler=reconciler,
                error_policy=error_policy,
                failures=failures,
                outcomes=outcomes,
                memo=memo,
            ),
            name=f"dispatcher of {self!r}"))
        for task in tasks:
            task.add_done_callback(escalate)

        logger.debug(f"Starting {self!r}.")
        try:
            while True:
                outcome = await outcomes.get()
                if isinstance(outcome, BaseException):
                    raise outcome
                yield outcome
        finally:
            logger.debug(f"Stopping {self!r}.")
            for task in tasks:
                task.remove_done_callback(escalate)

            # Ensure the shutdown is done even if the consumer is double-cancelled.
            stopping_task = asyncio.create_task(self._shutdown(
                tasks=tasks,
                queue=queue,
                scheduler=scheduler,
            ))
            while not stopping_task.done():
                with contextlib.suppress(asyncio.CancelledError):
                    await asyncio.shield(stopping_task)

    async def _shutdown(
            self,
            *,
            tasks: list[aiotasks.Task],
            queue: queueing.WorkQueue,
            scheduler: aiotasks.Scheduler,
    ) -> None:
        queue.close()
        await aiotasks.stop(tasks, title="controller", quiet=True, logger=logger)
        timeout = self.settings.reconciling.exit_timeout
        if scheduler.running():
            logger.debug(f"Waiting for {scheduler.running()} reconciliations to finish "
                         f"(for {timeout if timeout is not None else 'unlimited'}s).")
        await scheduler.close(timeout=timeout)

    async def _watch_primary(
            self,
            *,
            queue: queueing.WorkQueue,
    ) -> None:
        stream = reflecting.reflector(self._writer, watching.watch_events(
            settings=self.settings,
            resource=self.resource,
            namespace=self.namespace,
            labels=self.labels,
            fields=self.fields,
        ))
        async with contextlib.aclosing(stream):
            async for event in stream:
                match event:
                    case watching.Applied(obj=obj) | watching.Deleted(obj=obj):
                        objs: Iterable[bodies.RawBody] = [obj]
                    case watching.Restarted(objs=objs):
                        pass
                for obj in objs:
                    try:
                        ref = references.ObjectRef.from_body(obj, resource=self.resource)
                    except references.IdentityError:
                        continue  # already logged by the store
                    queue.trigger(ref)

    async def _watch_secondary(
            self,
            *,
            queue: queueing.WorkQueue,
            secondary: Secondary,
    ) -> None:
        stream = watching.watch_events(
            settings=self.settings,
            resource=secondary.resource,
            namespace=self.namespace if secondary.resource.namespaced else None,
            labels=secondary.labels,
            fields=secondary.fields,
        )
        async with contextlib.aclosing(stream):
            async for event in stream:
                match event:
                    case watching.Applied(obj=obj) | watching.Deleted(obj=obj):
                        objs: Iterable[bodies.RawBody] = [obj]
                    case watching.Restarted(objs=objs):
                        pass
                for obj in objs:
                    try:
                        refs = list(secondary.mapper(obj))
                    except Exception as e:
                        logger.exception(f"Mapping of {secondary.resource} has failed: {e!r}")
                        continue
                    for ref in refs:
                        queue.trigger(ref)

    async def _dispatch(
            self,
            *,
            queue: queueing.WorkQueue,
            scheduler: aiotasks.Scheduler,
            **kwargs: Any,
    ) -> None:
        while True:
            try:
                ref = await queue.get()
            except queueing.QueueClosed:
                break
            scheduler.spawn(self._reconcile(ref=ref, queue=queue, **kwargs),
                            name=f"reconciliation of {ref}")

    async def _reconcile(
            self,
            *,
            ref: references.ObjectRef,
            queue: queueing.WorkQueue,
            reconciler: invocation.Invokable,
            error_policy: requeueing.ErrorPolicy | None,
            failures: dict[references.ObjectRef, int],
            outcomes: asyncio.Queue[requeueing.Outcome | BaseException],
            memo: Any,
    ) -> None:
        # Until now, the new triggers were merged into this very reconciliation; now postponed.
        try:
            queue.start(ref)
        except queueing.QueueClosed:
            return

        try:
            # Always the latest state, regardless of which event has triggered the reconciliation.
            body = self._writer.as_reader().get(ref)
            if body is None:
                logger.debug(f"Skipping the reconciliation of {ref}: it is gone.")
                failures.pop(ref, None)
                return

            object_logger = loggers.ObjectLogger(ref=ref, body=body)
            kwargs = dict(
                body=body,
                ref=ref,
                resource=self.resource,
                logger=object_logger,
                store=self.store,
                settings=self.settings,
                memo=memo,
            )

            error: Exception | None = None
            requeue: requeueing.Requeue | None = None
            try:
                result = await invocation.invoke(reconciler, settings=self.settings, kwargs=kwargs)
            except Exception as e:
                error = e
                failures[ref] = failures.get(ref, 0) + 1
                requeue = self._apply_error_policy(
                    error_policy=error_policy,
                    error=e,
                    failures=failures[ref],
                    logger=object_logger,
                    kwargs=kwargs,
                )
                when = f"Will retry in {requeue.after}s." if requeue else "Will not retry."
                object_logger.exception(f"Reconciliation has failed: {e!r}. {when}")
            else:
                failures.pop(ref, None)
                if isinstance(result, requeueing.Requeue):
                    requeue = result
                elif result is not None:
                    object_logger.warning(f"Reconciliation has returned an unsupported "
                                          f"result, which is ignored: {result!r}")
                if requeue is not None:
                    object_logger.debug(f"Reconciliation has succeeded; "
                                        f"requeued in {requeue.after}s.")
                else:
                    object_logger.debug("Reconciliation has succeeded.")

            requeue_at: datetime.datetime | None = None
            if requeue is not None:
                queue.trigger_after(ref, requeue.after)
                requeue_at = _get_requeue_time(requeue.after)

            await outcomes.put(requeueing.Outcome(
                ref=ref,
                succeeded=error is None,
                error=error,
                requeue_after=requeue.after if requeue is not None else None,
                requeue_at=requeue_at,
            ))
        finally:
            queue.done(ref)

    def _apply_error_policy(
            self,
            *,
            error_policy: requeueing.ErrorPolicy | None,
            error: Exception,
            failures: int,
            logger: loggers.ObjectLogger,
            kwargs: dict[str, Any],
    ) -> requeueing.Requeue | None:
        policy = error_policy if error_policy is not None else requeueing.default_error_policy
        try:
            result = policy(**dict(kwargs, error=error, failures=failures))
        except Exception as e:
            logger.exception(f"Error policy has failed; falling back to the default: {e!r}")
            return requeueing.default_error_policy(**dict(kwargs, error=error, failures=failures))
        else:
            if result is not None and not isinstance(result, requeueing.Requeue):
                logger.warning(f"Error policy has returned an unsupported result; "
                               f"falling back to the default: {result!r}")
                return requeueing.default_error_policy(**dict(kwargs, error=error,
                                                              failures=failures))
            return result


def _get_requeue_time(delay: float) -> datetime.datetime:
    now = datetime.datetime.now(datetime.timezone.utc)
    try:
        return now + datetime.timedelta(seconds=delay)
    except OverflowError:
        return datetime.datetime.max.replace(tzinfo=datetime.timezone.utc)
