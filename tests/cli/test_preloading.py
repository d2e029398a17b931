import kruntime


def test_nothing(invoke, real_run):
    result = invoke(['run'])
    assert result.exit_code == 0

    registry = kruntime.get_default_registry()
    assert len(registry) == 0


def test_one_file(invoke, real_run):
    result = invoke(['run', 'handler1.py'])
    assert result.exit_code == 0

    registrations = list(kruntime.get_default_registry())
    assert len(registrations) == 1
    assert registrations[0].id == 'reconcile_fn'


def test_two_files(invoke, real_run):
    result = invoke(['run', 'handler1.py', 'handler2.py'])
    assert result.exit_code == 0

    registrations = list(kruntime.get_default_registry())
    assert len(registrations) == 2
    assert registrations[0].id == 'reconcile_fn'
    assert registrations[1].id == 'reconcile_cm'


def test_one_module(invoke, real_run):
    result = invoke(['run', '-m', 'package.module_1'])
    assert result.exit_code == 0

    registrations = list(kruntime.get_default_registry())
    assert len(registrations) == 1
    assert registrations[0].id == 'reconcile_fn'


def test_two_modules(invoke, real_run):
    result = invoke(['run', '-m', 'package.module_1', '--module', 'package.module_2'])
    assert result.exit_code == 0

    registrations = list(kruntime.get_default_registry())
    assert len(registrations) == 2
    assert registrations[0].id == 'reconcile_fn'
    assert registrations[1].id == 'reconcile_cm'


def test_mixed_sources(invoke, real_run):
    result = invoke(['run', 'handler1.py', '-m', 'package.module_2'])
    assert result.exit_code == 0

    registrations = list(kruntime.get_default_registry())
    assert len(registrations) == 2
    assert registrations[0].id == 'reconcile_fn'
    assert registrations[1].id == 'reconcile_cm'


def test_absent_file_fails(invoke, real_run):
    result = invoke(['run', 'absent.py'])
    assert result.exit_code != 0
    assert not real_run.called


def test_absent_module_fails(invoke, real_run):
    result = invoke(['run', '-m', 'package.absent'])
    assert result.exit_code != 0
    assert isinstance(result.exception, ModuleNotFoundError)
    assert not real_run.called
