import functools
import logging
import sys

import click.testing
import pytest

from kruntime.cli import main

SCRIPT1 = """
import kruntime

@kruntime.on.reconcile('kruntime.dev', 'v1', 'kruntimeexamples')
def reconcile_fn(body, **_):
    print('Hello from reconcile_fn!')
"""

SCRIPT2 = """
import kruntime

@kruntime.on.reconcile('', 'v1', 'configmaps', kind='ConfigMap')
def reconcile_cm(body, **_):
    print('Hello from reconcile_cm!')
"""


@pytest.fixture(autouse=True)
def srcdir(tmp_path, monkeypatch):
    (tmp_path / 'handler1.py').write_text(SCRIPT1)
    (tmp_path / 'handler2.py').write_text(SCRIPT2)
    pkgdir = tmp_path / 'package'
    pkgdir.mkdir()
    (pkgdir / '__init__.py').write_text('')
    (pkgdir / 'module_1.py').write_text(SCRIPT1)
    (pkgdir / 'module_2.py').write_text(SCRIPT2)

    monkeypatch.chdir(tmp_path)
    monkeypatch.syspath_prepend(str(tmp_path))
    yield tmp_path


@pytest.fixture(autouse=True)
def clean_modules_cache():
    # Otherwise, the first loaded test-modules remain there forever,
    # preventing 2nd and further tests from passing.
    for key in list(sys.modules.keys()):
        if key.startswith('package') or key.startswith('__kruntime_script_'):
            del sys.modules[key]


@pytest.fixture()
def runner():
    runner = click.testing.CliRunner()
    return runner


@pytest.fixture()
def invoke(runner):
    return functools.partial(runner.invoke, main)


@pytest.fixture()
def preload(mocker):
    return mocker.patch('kruntime._cogs.helpers.loaders.preload')


@pytest.fixture()
def real_run(mocker):
    return mocker.patch('kruntime._core.reactor.running.run')


@pytest.fixture(autouse=True)
def _restore_logging():
    """ The CLI configures the logging globally; undo it for other tests. """
    root = logging.getLogger()
    asyncio_logger = logging.getLogger('asyncio')
    root_handlers, root_level = list(root.handlers), root.level
    asyncio_handlers, asyncio_propagate = list(asyncio_logger.handlers), asyncio_logger.propagate
    try:
        yield
    finally:
        root.handlers[:] = root_handlers
        root.setLevel(root_level)
        asyncio_logger.handlers[:] = asyncio_handlers
        asyncio_logger.propagate = asyncio_propagate
