import kruntime


@kruntime.on.reconcile('kruntime.dev', 'v1', 'kruntimeexamples', kind='KruntimeExample')
def reconcile_fn(body, logger, **kwargs):
    logger.info(f"And here we are! Spec: {body.get('spec')}")
