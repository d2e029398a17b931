"""
All the structures needed for patching.

Two kinds of patches are supported, as recognised by the API:

* A JSON merge-patch (RFC 7386), i.e. a dictionary with field overrides,
  and ``None`` for field deletions. It is the simplest and most common one.
* A JSON patch (RFC 6902), i.e. a list of operations. It is used where
  the lists must be changed precisely, e.g. for the finalizers.
"""
from collections.abc import Mapping
from typing import Any, Union

from typing_extensions import Literal, TypedDict

JSONPatchOp = Literal["add", "replace", "remove", "test"]


class JSONPatchItem(TypedDict, total=False):
    op: JSONPatchOp
    path: str
    value: Any


JSONPatch = list[JSONPatchItem]
MergePatch = Mapping[str, Any]
Patch = Union[MergePatch, JSONPatch]

MERGE_PATCH_CONTENT_TYPE = 'application/merge-patch+json'
JSON_PATCH_CONTENT_TYPE = 'application/json-patch+json'


def get_content_type(patch: Patch) -> str:
    return JSON_PATCH_CONTENT_TYPE if isinstance(patch, list) else MERGE_PATCH_CONTENT_TYPE
