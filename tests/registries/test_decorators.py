import pytest

import kruntime
from kruntime._cogs.structs.references import Resource
from kruntime._core.intents.registries import ControllerRegistry


def test_reconcile_with_minimal_args(registry):

    @kruntime.on.reconcile('kruntime.dev', 'v1', 'kruntimeexamples')
    def fn(**_):
        pass

    registrations = list(registry)
    assert len(registrations) == 1
    assert registrations[0].fn is fn
    assert registrations[0].id == 'test_reconcile_with_minimal_args.<locals>.fn'
    assert registrations[0].resource == Resource('kruntime.dev', 'v1', 'kruntimeexamples')
    assert registrations[0].resource.kind is None
    assert registrations[0].resource.namespaced is True
    assert registrations[0].finalizer is None
    assert registrations[0].labels is None
    assert registrations[0].fields is None
    assert registrations[0].owns == ()
    assert registrations[0].watches == {}
    assert registrations[0].error_policy is None


def test_reconcile_with_all_args(registry):
    owned = Resource('', 'v1', 'configmaps', kind='ConfigMap')
    watched = Resource('', 'v1', 'secrets', kind='Secret')
    mapper = lambda body: []
    error_policy = lambda **_: None

    @kruntime.on.reconcile('kruntime.dev', 'v1', 'kruntimeexamples',
                           kind='KruntimeExample', namespaced=False,
                           id='my-id', finalizer='kruntime.dev/cleanup',
                           error_policy=error_policy,
                           labels={'app': 'x'}, fields='metadata.name=nm',
                           owns=[owned], watches={watched: mapper})
    def fn(**_):
        pass

    registrations = list(registry)
    assert len(registrations) == 1
    assert registrations[0].id == 'my-id'
    assert registrations[0].resource.kind == 'KruntimeExample'
    assert registrations[0].resource.namespaced is False
    assert registrations[0].finalizer == 'kruntime.dev/cleanup'
    assert registrations[0].error_policy is error_policy
    assert registrations[0].labels == {'app': 'x'}
    assert registrations[0].fields == 'metadata.name=nm'
    assert registrations[0].owns == (owned,)
    assert registrations[0].watches == {watched: mapper}


def test_decorator_returns_the_function_itself():

    def fn(**_):
        pass

    assert kruntime.on.reconcile('kruntime.dev', 'v1', 'kruntimeexamples')(fn) is fn


def test_explicit_registry(registry):
    explicit = ControllerRegistry()

    @kruntime.on.reconcile('kruntime.dev', 'v1', 'kruntimeexamples', registry=explicit)
    def fn(**_):
        pass

    assert len(explicit) == 1
    assert len(registry) == 0


def test_duplicate_ids_fail():

    @kruntime.on.reconcile('kruntime.dev', 'v1', 'kruntimeexamples', id='same')
    def fn1(**_):
        pass

    with pytest.raises(ValueError, match=r"registered twice"):
        @kruntime.on.reconcile('kruntime.dev', 'v1', 'kruntimeexamples', id='same')
        def fn2(**_):
            pass


def test_duplicate_finalizers_fail():

    @kruntime.on.reconcile('kruntime.dev', 'v1', 'kruntimeexamples', finalizer='x/y')
    def fn1(**_):
        pass

    with pytest.raises(ValueError, match=r"used by several"):
        @kruntime.on.reconcile('kruntime.dev', 'v1', 'kruntimeexamples', finalizer='x/y')
        def fn2(**_):
            pass


def test_empty_finalizer_fails():
    with pytest.raises(ValueError, match=r"non-empty"):
        kruntime.on.reconcile('kruntime.dev', 'v1', 'kruntimeexamples', finalizer='')
