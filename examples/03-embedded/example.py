"""
Embed a controller into an existing asyncio application, with no CLI or decorators.
"""
import asyncio
import contextlib

import kruntime


async def reconcile(body, ref, logger, **kwargs):
    logger.info(f"Reconciling {ref}: {body.get('data')}")
    if not body.get('data'):
        raise ValueError("The configmap has no data yet.")  # retried with the error backoff
    return kruntime.Requeue(after=60)


async def main():
    kruntime.configure(verbose=True)
    settings = kruntime.RuntimeSettings()
    settings.reconciling.concurrency = 5
    settings.reconciling.error_backoff = 1.0
    settings.reconciling.error_backoff_ceiling = 30.0

    resource = kruntime.Resource('', 'v1', 'configmaps', kind='ConfigMap')
    controller = kruntime.Controller(resource, namespace='default', settings=settings,
                                     labels={'kruntime.dev/example': None})

    async with kruntime.authenticated():
        async with contextlib.aclosing(controller.run(reconcile)) as outcomes:
            async for outcome in outcomes:
                print(f"{outcome.ref}: {'ok' if outcome.succeeded else repr(outcome.error)}; "
                      f"next at {outcome.requeue_at}")


if __name__ == '__main__':
    asyncio.run(main())
