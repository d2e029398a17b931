"""
Logging of the per-object messages and the logging setup of the runtime.

Every reconciliation gets a logger bound to the object's reference
(see :class:`ObjectLogger`). The formatters then either prefix the text
with the object's namespace & name, or put the reference into a separate
field of the JSON records, so that the log parsers can filter by objects.
"""
import copy
import enum
import logging
from collections.abc import MutableMapping
from typing import Any

from pythonjsonlogger.core import RESERVED_ATTRS
from pythonjsonlogger.json import JsonFormatter

from kruntime._cogs.helpers import typedefs
from kruntime._cogs.structs import bodies, references

logger = logging.getLogger('kruntime.objects')

# The name of our own handler on the root logger, replaced on every re-configuration.
HANDLER_NAME = 'kruntime'

# A key for object references in JSON logs, as seen by the log parsers.
DEFAULT_JSON_REFKEY = 'object'

# The extras put into the records by ObjectLogger; never dumped to JSON as is.
_OBJECT_EXTRAS = frozenset({'k8s_ref', 'k8s_uid', 'k8s_api_version'})

_SEVERITIES = [
    (logging.DEBUG, 'debug'),
    (logging.INFO, 'info'),
    (logging.WARNING, 'warn'),
    (logging.ERROR, 'error'),
]


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = '-json-'  # detected by identity; never used as a format string


def _get_ref(record: logging.LogRecord) -> references.ObjectRef | None:
    ref = getattr(record, 'k8s_ref', None)
    return ref if isinstance(ref, references.ObjectRef) else None


def _prefixed(record: logging.LogRecord) -> logging.LogRecord:
    ref = _get_ref(record)
    if ref is None:
        return record
    where = f"{ref.namespace}/{ref.name}" if ref.namespace else ref.name
    record = copy.copy(record)  # other handlers must see the original message
    record.msg = f"[{where}] {record.msg}"
    return record


def _describe(record: logging.LogRecord) -> dict[str, Any] | None:
    """ Render the record's object as the ``ObjectReference`` of the K8s API. """
    ref = _get_ref(record)
    if ref is None:
        return None
    return dict(
        apiVersion=getattr(record, 'k8s_api_version', None),
        kind=ref.kind,
        name=ref.name,
        uid=getattr(record, 'k8s_uid', None),
        namespace=ref.namespace,
    )


class ObjectTextFormatter(logging.Formatter):
    def __init__(self, fmt: str | None = None, *args: Any, prefix: bool = False, **kwargs: Any) -> None:
        super().__init__(fmt, *args, **kwargs)
        self.prefix = prefix

    def format(self, record: logging.LogRecord) -> str:
        return super().format(_prefixed(record) if self.prefix else record)


class ObjectJsonFormatter(JsonFormatter):
    """
    JSON records with the object's reference under a configurable key.

    The severity is added in the words of the log collectors (e.g. GCP/Stackdriver),
    unless something else has already put it into the record.
    """

    def __init__(
            self,
            *args: Any,
            prefix: bool = False,
            refkey: str | None = None,
            **kwargs: Any,
    ) -> None:
        kwargs['reserved_attrs'] = set(kwargs.get('reserved_attrs', RESERVED_ATTRS)) | _OBJECT_EXTRAS
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self.prefix = prefix
        self.refkey = refkey or DEFAULT_JSON_REFKEY

    def format(self, record: logging.LogRecord) -> str:
        return super().format(_prefixed(record) if self.prefix else record)

    def add_fields(
            self,
            log_record: dict[str, Any],
            record: logging.LogRecord,
            message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        described = _describe(record)
        if described is not None:
            log_record[self.refkey] = described
        if 'severity' not in log_record:
            log_record['severity'] = next((name for level, name in _SEVERITIES
                                           if record.levelno <= level), 'fatal')


class ObjectLogger(typedefs.LoggerAdapter):
    """
    A per-object logger of a single reconciliation.

    The reference is always known, even for the objects that are already gone.
    The body, if known, adds the object's uid & apiVersion for the JSON logs.
    """

    def __init__(
            self,
            *,
            ref: references.ObjectRef,
            body: bodies.RawBody | None = None,
    ) -> None:
        body = body if body is not None else bodies.RawBody()
        super().__init__(logger, dict(
            k8s_ref=ref,
            k8s_uid=body.get('metadata', {}).get('uid'),
            k8s_api_version=body.get('apiVersion'),
        ))

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        # The stdlib adapter replaces the call's extras; keep both, the object's ones win.
        kwargs['extra'] = dict(kwargs.get('extra') or {}) | dict(self.extra or {})
        return msg, kwargs


def make_formatter(
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: bool | None = None,
        log_refkey: str | None = None,
) -> logging.Formatter:
    """
    Build a formatter for the format given on CLI or programmatically.

    The text formats are prefixed with the objects' namespace/name by default,
    the JSON format is not: it has the reference in a separate field.
    """
    if log_format is LogFormat.JSON:
        return ObjectJsonFormatter(prefix=bool(log_prefix), refkey=log_refkey)
    prefix = log_prefix if log_prefix is not None else True
    if isinstance(log_format, LogFormat):
        return ObjectTextFormatter(log_format.value, prefix=prefix)
    if isinstance(log_format, str):
        return ObjectTextFormatter(log_format, prefix=prefix)
    raise ValueError(f"Unsupported log format: {log_format!r}")


def configure(
        debug: bool | None = None,
        verbose: bool | None = None,
        quiet: bool | None = None,
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: bool | None = None,
        log_refkey: str | None = None,
) -> None:
    """
    Route all the logs to stderr in the requested format & level.

    Repeated calls replace our handler rather than add more of them: e.g. in the
    CLI tests, the previous handler can write to an already closed stream.
    """
    handler = logging.StreamHandler()
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(make_formatter(log_format=log_format,
                                        log_prefix=log_prefix,
                                        log_refkey=log_refkey))

    root = logging.getLogger()
    root.handlers[:] = [h for h in root.handlers if h.get_name() != HANDLER_NAME] + [handler]
    root.setLevel(logging.DEBUG if debug or verbose else logging.WARNING if quiet else logging.INFO)

    # Asyncio's complaints (e.g. slow callbacks) are only for debugging the runtime itself.
    asyncio_logger = logging.getLogger('asyncio')
    asyncio_logger.propagate = bool(debug)
    if not debug:
        asyncio_logger.handlers[:] = [logging.NullHandler()]
