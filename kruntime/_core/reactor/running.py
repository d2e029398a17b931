import asyncio
import contextlib
import logging
import signal
import threading
from collections.abc import AsyncIterator
from typing import Any

from kruntime._cogs.aiokits import aiotasks
from kruntime._cogs.clients import auth, logins
from kruntime._cogs.configs import configuration
from kruntime._cogs.structs import credentials, references
from kruntime._core.actions import finalizing
from kruntime._core.intents import registries
from kruntime._core.reactor import controlling

logger = logging.getLogger(__name__)


def run(
        *,
        registry: registries.ControllerRegistry | None = None,
        settings: configuration.RuntimeSettings | None = None,
        namespace: references.Namespace = None,
        connection: credentials.ConnectionInfo | None = None,
        memo: Any = None,
) -> None:
    """
    Run all the registered controllers synchronously until stopped by a signal.

    This function should be used to run the runtime in normal sync mode.
    """
    with contextlib.suppress(asyncio.CancelledError):
        asyncio.run(runtime(
            registry=registry,
            settings=settings,
            namespace=namespace,
            connection=connection,
            memo=memo,
        ))


async def runtime(
        *,
        registry: registries.ControllerRegistry | None = None,
        settings: configuration.RuntimeSettings | None = None,
        namespace: references.Namespace = None,
        connection: credentials.ConnectionInfo | None = None,
        memo: Any = None,
        stop_flag: aiotasks.Future | None = None,
) -> None:
    """
    Run all the registered controllers asynchronously.

    This function should be used to run the runtime in an asyncio event-loop
    if the runtime is orchestrated explicitly and manually.

    The runtime stops on SIGINT/SIGTERM (when in the main thread),
    or when the stop-flag future is set, or when any of the controllers fails.
    """
    registry = registry if registry is not None else registries.get_default_registry()
    settings = settings if settings is not None else configuration.RuntimeSettings()
    if not registry:
        logger.warning("No reconcilers are registered: nothing to run.")

    async with authenticated(connection=connection):
        await _run_controllers(
            registry=registry,
            settings=settings,
            namespace=namespace,
            memo=memo,
            stop_flag=stop_flag,
        )


@contextlib.asynccontextmanager
async def authenticated(
        *,
        connection: credentials.ConnectionInfo | None = None,
) -> AsyncIterator[auth.APIContext]:
    """
    Log in and make the API context available to all API calls within.

    The runtime does this on its own. The applications that run the controllers
    directly (with no runtime) must do this around the controllers explicitly.
    Fails early with :class:`LoginError` if there are no credentials.
    """
    info = connection if connection is not None else logins.login(logger=logger)
    context = auth.APIContext(info)
    token = auth.context_var.set(context)
    try:
        yield context
    finally:
        await context.close()
        auth.context_var.reset(token)


async def _run_controllers(
        *,
        registry: registries.ControllerRegistry,
        settings: configuration.RuntimeSettings,
        namespace: references.Namespace,
        memo: Any,
        stop_flag: aiotasks.Future | None,
) -> None:
    loop = asyncio.get_running_loop()
    signal_flag: aiotasks.Future = loop.create_future()
    signals_installed = False
    if threading.current_thread() is threading.main_thread():
        try:
            loop.add_signal_handler(signal.SIGINT, signal_flag.set_result, signal.SIGINT)
            loop.add_signal_handler(signal.SIGTERM, signal_flag.set_result, signal.SIGTERM)
            signals_installed = True
        except NotImplementedError:
            logger.warning("OS signals are ignored: can't add signal handler in Windows.")
    else:
        logger.warning("OS signals are ignored: running not in the main thread.")

    # The contextvars (incl. the API context) are copied into the tasks.
    tasks: list[aiotasks.Task] = []
    tasks.append(aiotasks.create_guarded_task(
        name="stop-flag checker", finishable=True, logger=logger,
        coro=_stop_flag_checker(signal_flag=signal_flag, stop_flag=stop_flag)))
    for registration in registry:
        tasks.append(aiotasks.create_guarded_task(
            name=f"controller for {registration.id!r}", logger=logger,
            coro=run_controller(
                registration=registration,
                settings=settings,
                namespace=namespace,
                memo=memo,
            )))

    try:
        done, pending = await aiotasks.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        await aiotasks.stop(pending, title="Root", logger=logger)
        aiotasks.reraise(done)
    except asyncio.CancelledError:
        await aiotasks.stop(tasks, title="Root", logger=logger, cancelled=True)
        raise
    finally:
        if signals_installed:
            loop.remove_signal_handler(signal.SIGINT)
            loop.remove_signal_handler(signal.SIGTERM)


def build_controller(
        *,
        registration: registries.ReconcilerRegistration,
        settings: configuration.RuntimeSettings,
        namespace: references.Namespace = None,
) -> controlling.Controller:
    controller = controlling.Controller(
        registration.resource,
        namespace=namespace,
        labels=registration.labels,
        fields=registration.fields,
        settings=settings,
    )
    for resource in registration.owns:
        controller.owns(resource)
    for resource, mapper in registration.watches.items():
        controller.watches(resource, mapper)
    return controller


async def run_controller(
        *,
        registration: registries.ReconcilerRegistration,
        settings: configuration.RuntimeSettings,
        namespace: references.Namespace = None,
        memo: Any = None,
) -> None:
    controller = build_controller(registration=registration, settings=settings, namespace=namespace)
    reconciler = registration.fn
    if registration.finalizer is not None:
        reconciler = finalizing.finalizer(registration.fn, token=registration.finalizer)

    # The outcomes are already logged per object by the controller; only count them here.
    stream = controller.run(reconciler, error_policy=registration.error_policy, memo=memo)
    succeeded = failed = 0
    try:
        async with contextlib.aclosing(stream):
            async for outcome in stream:
                if outcome.succeeded:
                    succeeded += 1
                else:
                    failed += 1
    finally:
        logger.debug(f"Controller for {registration.id!r} is stopped after "
                     f"{succeeded} successful and {failed} failed reconciliations.")


async def _stop_flag_checker(
        signal_flag: aiotasks.Future,
        stop_flag: aiotasks.Future | None,
) -> None:
    """
    A top-level task for external stopping by a signal or a stop-flag.
    Once set, this task will exit, and thus all other top-level tasks will be cancelled.
    """
    flags: list[aiotasks.Future] = [signal_flag]
    if stop_flag is not None:
        flags.append(stop_flag)

    try:
        done, _ = await asyncio.wait(flags, return_when=asyncio.FIRST_COMPLETED)
        result = done.pop().result()
    except asyncio.CancelledError:
        pass  # the runtime is stopping for any other reason
    else:
        if isinstance(result, signal.Signals):
            logger.info("Signal %s is received. The runtime is stopping.", result.name)
        else:
            logger.info("Stop-flag is set to %r. The runtime is stopping.", result)
