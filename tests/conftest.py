import io
import json
import logging
import re
import sys
from contextvars import ContextVar
from unittest.mock import AsyncMock, Mock

import pytest

import kruntime
from kruntime._cogs.clients import auth
from kruntime._cogs.configs.configuration import RuntimeSettings
from kruntime._cogs.structs.credentials import ConnectionInfo
from kruntime._cogs.structs.references import Resource
from kruntime._core.actions.loggers import ObjectTextFormatter, configure
from kruntime._core.intents.registries import ControllerRegistry


@pytest.fixture()
def namespaced_resource():
    """ The resource used in the tests. Usually mocked, so it does not matter. """
    return Resource('kruntime.dev', 'v1', 'kruntimeexamples', kind='KruntimeExample',
                    namespaced=True)


@pytest.fixture()
def cluster_resource():
    """ The resource used in the tests. Usually mocked, so it does not matter. """
    return Resource('kruntime.dev', 'v1', 'kruntimeexamples', kind='KruntimeExample',
                    namespaced=False)


@pytest.fixture(params=[True, False], ids=['namespaced', 'cluster'])
def resource(request):
    """ The resource used in the tests. Usually mocked, so it does not matter. """
    return Resource('kruntime.dev', 'v1', 'kruntimeexamples', kind='KruntimeExample',
                    namespaced=request.param)


@pytest.fixture()
def namespace(resource):
    return 'ns' if resource.namespaced else None


@pytest.fixture()
def settings():
    """ The settings with no sleeping on the errors, unless explicitly configured. """
    settings = RuntimeSettings()
    settings.networking.error_backoffs = []
    settings.watching.reconnect_backoff = 0
    settings.watching.error_backoff = 0
    settings.watching.error_backoff_ceiling = 0
    return settings


@pytest.fixture(autouse=True)
def registry():
    """
    Ensure that the tests have a fresh new global (not re-used) registry.
    """
    old_registry = kruntime.get_default_registry()
    new_registry = ControllerRegistry()
    kruntime.set_default_registry(new_registry)
    yield new_registry
    kruntime.set_default_registry(old_registry)


#
# Mocks for the API client. Reasons:
# 1. We do not test the client in the higher layers, so it is mocked there.
# 2. No external calls must be made under any circumstances.
#    The unit-tests must be fully isolated from the environment.
#


@pytest.fixture()
def hostname():
    """ A fake hostname to be used in all aiohttp/aresponses tests. """
    return 'fake-host'


@pytest.fixture()
def connection(hostname):
    return ConnectionInfo(server=f'https://{hostname}')


@pytest.fixture()
async def fake_context(mocker, connection):
    """
    Provide a freshly created API context for every test, and close it after.

    The client wrappers take the context from the context variable, as if every
    coroutine is invoked from the runtime (where it is set normally).
    The variable is replaced with the one having the context as its default,
    so that it is visible in all the tasks and threads regardless of where
    and when the test's event loop copies the context.
    """
    context = auth.APIContext(connection)
    mocker.patch.object(auth, 'context_var', ContextVar('context_var', default=context))
    try:
        yield context
    finally:
        await context.close()


@pytest.fixture()
def resp_mocker(fake_context, aresponses):
    """
    A factory of server-side callbacks for `aresponses` with mocking/spying.

    The value of the fixture is a function, which return a coroutine mock.
    That coroutine mock should be passed to `aresponses.add` as a response
    callback function. When called, it calls the mock defined by the function's
    arguments (specifically, return_value or side_effects).

    The requests' payloads are remembered in the ``.payloads`` list of the mock,
    the requests' query parameters are in the ``.queries`` list.

    Sample usage::

        def test_me(resp_mocker):
            response = aiohttp.web.json_response({'a': 'b'})
            callback = resp_mocker(return_value=response)
            aresponses.add(hostname, '/path/', 'get', callback)
            do_something()
            assert callback.called
            assert callback.call_count == 1
            assert callback.payloads == [None]
    """
    def resp_maker(*args, **kwargs):
        actual_response = Mock(*args, **kwargs)

        async def resp_mock_effect(request):
            # The request's content can be read inside of the handler only.
            text = await request.text()
            try:
                payload = json.loads(text) if text else None
            except json.JSONDecodeError:
                payload = text
            resp_mock.payloads.append(payload)
            resp_mock.queries.append(dict(request.query))
            resp_mock.headers.append(dict(request.headers))

            # Get a response/error as it was intended (via return_value/side_effect).
            return actual_response()

        resp_mock = AsyncMock(side_effect=resp_mock_effect)
        resp_mock.payloads = []
        resp_mock.queries = []
        resp_mock.headers = []
        return resp_mock
    return resp_maker


#
# Helpers for the logging checks.
#


@pytest.fixture()
def logstream(caplog):
    """ Prefixing is done at the final output. We have to intercept it. """

    logger = logging.getLogger()
    handlers = list(logger.handlers)

    # Setup all log levels of sub-libraries. A sife-effect: the handlers are also added.
    configure(verbose=True)

    # Remove any stream handlers added in the step above. But keep the caplog's handlers.
    for handler in list(logger.handlers):
        if isinstance(handler, logging.StreamHandler) and handler.stream is sys.stderr:
            logger.removeHandler(handler)

    # Inject our stream-intercepting handler.
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    formatter = ObjectTextFormatter('prefix %(message)s', prefix=True)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    try:
        with caplog.at_level(logging.DEBUG):
            yield stream
    finally:
        logger.removeHandler(handler)
        logger.handlers[:] = handlers  # undo `configure()`


@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    def assert_logs_fn(patterns, prohibited=[], strict=False):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            # The expected pattern is at position 0.
            # Looking-ahead: if one of the following patterns matches, while the
            # 0th does not, then the log message is missing, and we fail the test.
            for idx, pattern in enumerate(remaining_patterns):
                m = re.search(pattern, message)
                if m:
                    if idx == 0:
                        remaining_patterns[:1] = []
                        break  # out of `remaining_patterns` cycle
                    else:
                        skipped_patterns = remaining_patterns[:idx]
                        raise AssertionError(f"Few patterns were skipped: {skipped_patterns!r}")
                elif strict:
                    raise AssertionError(f"Unexpected log message: {message!r}")

            # Check that the prohibited patterns do not appear in any message.
            for pattern in prohibited:
                m = re.search(pattern, message)
                if m:
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")

        # If all patterns have been matched in order, we are done.
        # if some are left, but the messages are over, then we fail.
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn
