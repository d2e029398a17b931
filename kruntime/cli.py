import dataclasses
import functools
from typing import Any, Callable

import click

from kruntime._cogs.configs import configuration
from kruntime._cogs.helpers import loaders
from kruntime._cogs.structs import credentials
from kruntime._core.actions import loggers
from kruntime._core.intents import registries
from kruntime._core.reactor import running


@dataclasses.dataclass()
class CLIControls:
    """ The runtime's controls, which are impossible to pass via CLI (e.g. in tests). """
    registry: registries.ControllerRegistry | None = None
    settings: configuration.RuntimeSettings | None = None
    connection: credentials.ConnectionInfo | None = None


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: bool | None = False,
                log_refkey: str | None = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


@click.version_option(prog_name='kruntime')
@click.group(name='kruntime', context_settings=dict(
    auto_envvar_prefix='KRUNTIME',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.option('-n', '--namespace', type=str, default=None)
@click.option('-m', '--module', 'modules', multiple=True)
@click.argument('paths', nargs=-1)
@click.make_pass_decorator(CLIControls, ensure=True)
def run(
        __controls: CLIControls,
        paths: list[str],
        modules: list[str],
        namespace: str | None,
) -> None:
    """ Start the controllers of all the registered reconcilers. """
    if __controls.registry is not None:
        registries.set_default_registry(__controls.registry)
    loaders.preload(
        paths=paths,
        modules=modules,
    )
    return running.run(
        namespace=namespace,
        registry=__controls.registry,
        settings=__controls.settings,
        connection=__controls.connection,
    )
