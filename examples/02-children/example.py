import kruntime
import yaml

CONFIGMAPS = kruntime.Resource('', 'v1', 'configmaps', kind='ConfigMap')


@kruntime.on.reconcile('kruntime.dev', 'v1', 'kruntimeexamples', kind='KruntimeExample',
                       owns=[CONFIGMAPS], finalizer='kruntime.dev/children')
async def reconcile_fn(event, body, ref, store, logger, **kwargs):
    name = f"{ref.name}-data"

    match event:
        case kruntime.Apply():
            # Render the configmap with some spec fields, and make it our child.
            doc = yaml.safe_load(f"""
                data:
                  field: {body.get('spec', {}).get('field', 'default-value')}
                metadata:
                  ownerReferences:
                  - apiVersion: kruntime.dev/v1
                    kind: KruntimeExample
                    name: {ref.name}
                    uid: {body['metadata']['uid']}
            """)
            created = await kruntime.create_obj(
                settings=kwargs['settings'],
                resource=CONFIGMAPS,
                namespace=ref.namespace,
                name=name,
                body=doc,
                logger=logger,
            )
            if created is None:  # exists already, bring it up to date.
                await kruntime.patch_obj(
                    settings=kwargs['settings'],
                    resource=CONFIGMAPS,
                    namespace=ref.namespace,
                    name=name,
                    patch=doc,
                    logger=logger,
                )
            else:
                logger.info(f"Created the configmap {name!r}.")
            return kruntime.Requeue(after=600)

        case kruntime.Cleanup():
            # The children are garbage-collected by K8s anyway; this is for demonstration.
            # A not-found configmap is not an error: it is already deleted.
            await kruntime.delete_obj(
                settings=kwargs['settings'],
                resource=CONFIGMAPS,
                namespace=ref.namespace,
                name=name,
                logger=logger,
            )
            logger.info(f"Cleaned up: {name!r}. Objects remaining: {len(store)}.")
