"""
All configuration flags, options, settings to fine-tune the controllers.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

In this framework, they are called *"settings"* (plural).
Combined, they form a *"configuration"* (singular).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).
"""
import concurrent.futures
import dataclasses
from collections.abc import Iterable


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: float | None = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the API requests (except watching; see ``WatchingSettings``).
    """

    connect_timeout: float | None = None
    """
    A timeout for the TCP/SSL connection establishing in the API requests.
    """

    error_backoffs: Iterable[float] = (1, 1, 2, 3, 5, 8, 13, 21)
    """
    Backoff intervals in case of retryable errors of the API requests:
    connection errors, timeouts, HTTP 5xx. Every item is one more attempt.
    After the intervals are exhausted, the error is escalated to the caller.

    To disable the retries, set it to ``[]`` or ``()``.
    """


@dataclasses.dataclass
class WatchingSettings:

    server_timeout: float | None = None
    """
    The maximum duration of one streaming request. Patched in some tests.
    If ``None``, then obey the server-side timeouts (they seem to be random).
    """

    client_timeout: float | None = None
    """
    An HTTP/HTTPS session timeout to use in watch requests.
    """

    connect_timeout: float | None = None
    """
    An HTTP/HTTPS connection timeout to use in watch requests.
    """

    reconnect_backoff: float = 0.1
    """
    How long should a pause be between watch requests (to prevent API flooding).
    """

    error_backoff: float = 1.0
    """
    The initial delay before re-listing after a failed listing or watching.
    The delay doubles with every consecutive failure up to the ceiling,
    and is reset after the next successful listing.
    """

    error_backoff_ceiling: float = 60.0
    """
    The maximum delay between the re-listing attempts after failures.
    """


@dataclasses.dataclass
class ReconcilingSettings:

    concurrency: int | None = None
    """
    How many reconciliations can run simultaneously for distinct objects.
    If ``None``, there is no limit (as many as there are triggered objects).
    Regardless of this value, one object is never reconciled concurrently.
    """

    error_backoff: float = 5.0
    """
    The delay before retrying a failed reconciliation of an object.
    """

    error_backoff_factor: float = 2.0
    """
    How much the delay grows with every consecutive failure of the same object.
    Set it to ``1`` to retry with the fixed delay of ``error_backoff``.
    The consecutive failures are reset by any successful reconciliation.
    """

    error_backoff_ceiling: float = 5 * 60.0
    """
    The maximum delay between the retries of a repeatedly failing object.
    """

    exit_timeout: float | None = 10.0
    """
    How long the in-flight reconciliations can run on the controller's exit
    before they are cancelled. ``None`` means waiting until they are all done.
    """


@dataclasses.dataclass
class ExecutionSettings:
    """
    Settings for synchronous reconcilers execution (e.g. thread-/process-pools).
    """

    executor: concurrent.futures.Executor | None = None
    """
    The executor to run the synchronous reconcilers in.
    If ``None``, the default executor of the asyncio event loop is used.
    """


@dataclasses.dataclass
class RuntimeSettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    reconciling: ReconcilingSettings = dataclasses.field(default_factory=ReconcilingSettings)
    execution: ExecutionSettings = dataclasses.field(default_factory=ExecutionSettings)
