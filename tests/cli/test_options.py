import kruntime
from kruntime.cli import CLIControls


def test_help(invoke):
    result = invoke(['--help'])
    assert result.exit_code == 0
    assert 'run' in result.output


def test_run_help(invoke):
    result = invoke(['run', '--help'])
    assert result.exit_code == 0
    assert '--namespace' in result.output
    assert '--module' in result.output
    assert '--log-format' in result.output


def test_version(invoke):
    result = invoke(['--version'])
    assert result.exit_code == 0
    assert 'kruntime' in result.output


def test_cluster_wide_by_default(invoke, preload, real_run):
    result = invoke(['run'])
    assert result.exit_code == 0
    assert real_run.call_count == 1
    assert real_run.call_args.kwargs['namespace'] is None


def test_namespace(invoke, preload, real_run):
    result = invoke(['run', '-n', 'ns1'])
    assert result.exit_code == 0
    assert real_run.call_args.kwargs['namespace'] == 'ns1'


def test_namespace_from_envvar(invoke, preload, real_run):
    result = invoke(['run'], env={'KRUNTIME_RUN_NAMESPACE': 'ns2'})
    assert result.exit_code == 0
    assert real_run.call_args.kwargs['namespace'] == 'ns2'


def test_paths_and_modules_are_preloaded(invoke, preload, real_run):
    result = invoke(['run', 'a.py', 'b.py', '-m', 'x.y'])
    assert result.exit_code == 0
    assert preload.call_count == 1
    assert list(preload.call_args.kwargs['paths']) == ['a.py', 'b.py']
    assert list(preload.call_args.kwargs['modules']) == ['x.y']


def test_controls_are_passed_through(invoke, preload, real_run, settings, connection):
    registry = kruntime.ControllerRegistry()
    controls = CLIControls(registry=registry, settings=settings, connection=connection)

    result = invoke(['run'], obj=controls)

    assert result.exit_code == 0
    assert real_run.call_args.kwargs['registry'] is registry
    assert real_run.call_args.kwargs['settings'] is settings
    assert real_run.call_args.kwargs['connection'] is connection
    assert kruntime.get_default_registry() is registry


def test_unknown_log_format_fails(invoke, preload, real_run):
    result = invoke(['run', '--log-format', 'unknown'])
    assert result.exit_code != 0
    assert not real_run.called
