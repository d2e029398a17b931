"""
The main module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the framework's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from kruntime import (
    on,  # as a separate name on the public namespace
)
from kruntime._cogs.configs.configuration import (
    RuntimeSettings,
    NetworkingSettings,
    WatchingSettings,
    ReconcilingSettings,
    ExecutionSettings,
)
from kruntime._cogs.clients.errors import (
    APIError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
    APIUnprocessableError,
    APITooManyRequestsError,
    APIClientError,
    APIServerError,
)
from kruntime._cogs.clients.fetching import (
    list_objs,
)
from kruntime._cogs.clients.watching import (
    watch_objs,
)
from kruntime._cogs.clients.patching import (
    patch_obj,
)
from kruntime._cogs.clients.creating import (
    create_obj,
)
from kruntime._cogs.clients.deleting import (
    delete_obj,
)
from kruntime._cogs.helpers.typedefs import (
    Logger,
)
from kruntime._cogs.helpers.versions import (
    version as __version__,
)
from kruntime._cogs.structs.bodies import (
    RawBody,
    RawEvent,
    RawEventType,
    Labels,
    Annotations,
)
from kruntime._cogs.structs.credentials import (
    LoginError,
    ConnectionInfo,
)
from kruntime._cogs.structs.patches import (
    Patch,
    JSONPatch,
    MergePatch,
)
from kruntime._cogs.structs.references import (
    Resource,
    ObjectRef,
    Namespace,
    IdentityError,
)
from kruntime._core.actions.finalizing import (
    finalizer,
    Apply,
    Cleanup,
    FinalizerEvent,
    FinalizerState,
)
from kruntime._core.actions.loggers import (
    configure,
    LogFormat,
    ObjectLogger,
)
from kruntime._core.actions.requeueing import (
    Requeue,
    Outcome,
    ErrorPolicy,
    default_error_policy,
)
from kruntime._core.intents.registries import (
    ControllerRegistry,
    get_default_registry,
    set_default_registry,
)
from kruntime._core.reactor.controlling import (
    Controller,
    Mapper,
)
from kruntime._core.reactor.reflecting import (
    reflector,
)
from kruntime._core.reactor.running import (
    run,
    runtime,
    authenticated,
)
from kruntime._core.reactor.stores import (
    Store,
    Writer,
)
from kruntime._core.reactor.watching import (
    watch_events,
    Applied,
    Deleted,
    Restarted,
    WatchEvent,
    WatcherState,
)

__all__ = [
    'on',
    'RuntimeSettings',
    'NetworkingSettings',
    'WatchingSettings',
    'ReconcilingSettings',
    'ExecutionSettings',
    'APIError',
    'APIUnauthorizedError',
    'APIForbiddenError',
    'APINotFoundError',
    'APIConflictError',
    'APIUnprocessableError',
    'APITooManyRequestsError',
    'APIClientError',
    'APIServerError',
    'list_objs',
    'watch_objs',
    'create_obj',
    'patch_obj',
    'delete_obj',
    'Logger',
    '__version__',
    'RawBody',
    'RawEvent',
    'RawEventType',
    'Labels',
    'Annotations',
    'LoginError',
    'ConnectionInfo',
    'Patch',
    'JSONPatch',
    'MergePatch',
    'Resource',
    'ObjectRef',
    'Namespace',
    'IdentityError',
    'finalizer',
    'Apply',
    'Cleanup',
    'FinalizerEvent',
    'FinalizerState',
    'configure',
    'LogFormat',
    'ObjectLogger',
    'Requeue',
    'Outcome',
    'ErrorPolicy',
    'default_error_policy',
    'ControllerRegistry',
    'get_default_registry',
    'set_default_registry',
    'Controller',
    'Mapper',
    'reflector',
    'run',
    'runtime',
    'authenticated',
    'Store',
    'Writer',
    'watch_events',
    'Applied',
    'Deleted',
    'Restarted',
    'WatchEvent',
    'WatcherState',
]
