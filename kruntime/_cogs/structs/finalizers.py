"""
All the functions to manipulate the object finalization and deletion.

Finalizers are used to block the actual deletion until the finalizers
are removed, meaning that the controller has done all its duties
to "release" the object (e.g. cleanups of the external state).

The changes are expressed as JSON-patches (RFC 6902) with a ``test`` step,
so that the finalizers of other controllers added or removed concurrently
are never overwritten: the API rejects the patch if the list has changed.
"""
import datetime

import iso8601

from kruntime._cogs.structs import bodies, patches


def is_deletion_ongoing(
        body: bodies.RawBody,
) -> bool:
    return body.get('metadata', {}).get('deletionTimestamp', None) is not None


def is_deletion_blocked(
        body: bodies.RawBody,
        finalizer: str,
) -> bool:
    finalizers = body.get('metadata', {}).get('finalizers', [])
    return finalizer in finalizers


def get_deletion_time(
        body: bodies.RawBody,
) -> datetime.datetime | None:
    """
    Parse the deletion timestamp if it is set and is parseable.

    The timestamp is informational only; the deletion is ongoing as long as
    the field is set, regardless of its value (see :func:`is_deletion_ongoing`).
    """
    value = body.get('metadata', {}).get('deletionTimestamp', None)
    if value is None:
        return None
    try:
        return iso8601.parse_date(value)
    except iso8601.ParseError:
        return None


def block_deletion(
        body: bodies.RawBody,
        finalizer: str,
) -> patches.JSONPatch:
    finalizers = list(body.get('metadata', {}).get('finalizers', None) or [])
    if finalizer in finalizers:
        return []
    elif not finalizers:
        # An absent list is tested as null; the whole list is created then.
        return [
            {'op': 'test', 'path': '/metadata/finalizers', 'value': None},
            {'op': 'add', 'path': '/metadata/finalizers', 'value': [finalizer]},
        ]
    else:
        return [
            {'op': 'test', 'path': '/metadata/finalizers', 'value': finalizers},
            {'op': 'add', 'path': '/metadata/finalizers/-', 'value': finalizer},
        ]


def allow_deletion(
        body: bodies.RawBody,
        finalizer: str,
) -> patches.JSONPatch:
    finalizers = list(body.get('metadata', {}).get('finalizers', None) or [])
    if finalizer not in finalizers:
        return []
    index = finalizers.index(finalizer)
    path = f'/metadata/finalizers/{index}'
    return [
        {'op': 'test', 'path': path, 'value': finalizer},
        {'op': 'remove', 'path': path},
    ]
