"""
Structural diff of two JSON documents into an RFC 6902 JSON Patch.

Lists are compared by position: a prepended element shows up as per-index
changes plus an ``add`` at the end, never as a ``move``. Only ``add``,
``remove`` and ``replace`` are emitted, in an order that applies cleanly.
"""

from collections.abc import Mapping, Sequence
from typing import Any

import jsonpatch
from jsonpointer import JsonPointer


def _pointer(parts: list) -> str:
    return JsonPointer.from_parts(parts).path


def _is_list(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def _same_scalar(a: Any, b: Any) -> bool:
    # True == 1 in Python but not in JSON
    return type(a) is type(b) and a == b


def _diff(parts: list, before: Any, after: Any, ops: list[dict[str, Any]]) -> None:
    if isinstance(before, Mapping) and isinstance(after, Mapping):
        _diff_mappings(parts, before, after, ops)
    elif _is_list(before) and _is_list(after):
        _diff_lists(parts, before, after, ops)
    elif not _same_scalar(before, after):
        ops.append({"op": "replace", "path": _pointer(parts), "value": after})


def _diff_mappings(
    parts: list, before: Mapping, after: Mapping, ops: list[dict[str, Any]]
) -> None:
    for key, old in before.items():
        if key not in after:
            ops.append({"op": "remove", "path": _pointer(parts + [key])})
        else:
            _diff(parts + [key], old, after[key], ops)
    for key, new in after.items():
        if key not in before:
            ops.append({"op": "add", "path": _pointer(parts + [key]), "value": new})


def _diff_lists(
    parts: list, before: Sequence, after: Sequence, ops: list[dict[str, Any]]
) -> None:
    common = min(len(before), len(after))
    for i in range(common):
        _diff(parts + [i], before[i], after[i], ops)
    for i in range(common, len(after)):
        ops.append({"op": "add", "path": _pointer(parts + [i]), "value": after[i]})
    # Highest index first so earlier removals don't shift later paths
    for i in reversed(range(common, len(before))):
        ops.append({"op": "remove", "path": _pointer(parts + [i])})


def diff(before: Any, after: Any) -> list[dict[str, Any]]:
    """Return the operations turning ``before`` into ``after``."""
    ops: list[dict[str, Any]] = []
    _diff([], before, after, ops)
    return ops


def make_patch(before: Any, after: Any) -> jsonpatch.JsonPatch:
    return jsonpatch.JsonPatch(diff(before, after))
