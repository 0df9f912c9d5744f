"""
Bounded sanitization of arbitrary host objects for metadata capture and
diagnostic output.

Bounds (contract.py):
- depth > 3            -> '[Max Depth Reached]'
- > 20 keys per object -> first 20 kept plus '...': '[N more keys]'
- > 10 items per list  -> first 10 kept
- strings > 500 chars  -> truncated with '...[truncated]'
- cycles               -> '[Circular Reference]'
- callables            -> '[Filtered]'
- binary payloads      -> '[<n> bytes]' (raw bytes never retained)
- NaN / +-inf          -> 'NaN' / 'Infinity' / '-Infinity'
Any failure collapses the whole value to '[Serialization Error]'.
"""

import math
from collections.abc import Mapping
from typing import Any

from .contract import (
    SANITIZE_MAX_DEPTH, SANITIZE_MAX_KEYS, SANITIZE_MAX_ITEMS, SANITIZE_MAX_STRING,
    TRUNCATED_SUFFIX, MAX_DEPTH_MARKER, CIRCULAR_MARKER, FILTERED_MARKER,
    SERIALIZATION_ERROR_MARKER, NAN_MARKER, INFINITY_MARKER, NEGATIVE_INFINITY_MARKER
)


_PRIMITIVES = (bool, int, float)


def truncateText(text: str, limit: int = SANITIZE_MAX_STRING) -> str:
    if len(text) > limit:
        return text[:limit] + TRUNCATED_SUFFIX
    return text


def sanitizeForLogging(data: Any) -> Any:
    """Return a JSON-safe, size-bounded copy of data. Never raises."""
    try:
        return _sanitize(data, 0, set())
    except Exception:
        return SERIALIZATION_ERROR_MARKER


def _nonFiniteMarker(value: float) -> str:
    if math.isnan(value):
        return NAN_MARKER
    return INFINITY_MARKER if value > 0 else NEGATIVE_INFINITY_MARKER


def _sanitize(obj: Any, depth: int, ancestors: set) -> Any:
    if isinstance(obj, float) and not math.isfinite(obj):
        return _nonFiniteMarker(obj) if depth <= SANITIZE_MAX_DEPTH else MAX_DEPTH_MARKER
    if obj is None or isinstance(obj, _PRIMITIVES):
        return obj if depth <= SANITIZE_MAX_DEPTH else MAX_DEPTH_MARKER
    if isinstance(obj, str):
        return truncateText(obj) if depth <= SANITIZE_MAX_DEPTH else MAX_DEPTH_MARKER
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return f"[{len(obj)} bytes]"
    if depth > SANITIZE_MAX_DEPTH:
        return MAX_DEPTH_MARKER
    if callable(obj) and not isinstance(obj, (Mapping, list, tuple, set, frozenset)):
        return FILTERED_MARKER

    objId = id(obj)
    if objId in ancestors:
        return CIRCULAR_MARKER
    ancestors.add(objId)
    try:
        if isinstance(obj, Mapping):
            return _sanitizeMapping(obj, depth, ancestors)
        if isinstance(obj, (list, tuple, set, frozenset)):
            items = list(obj)[:SANITIZE_MAX_ITEMS]
            return [_sanitize(item, depth + 1, ancestors) for item in items]
        if hasattr(obj, '__dict__'):
            return _sanitizeMapping(vars(obj), depth, ancestors)
        return truncateText(str(obj))
    finally:
        ancestors.discard(objId)


def _sanitizeMapping(obj: Mapping, depth: int, ancestors: set) -> dict:
    result = {}
    keys = list(obj.keys())
    for index, key in enumerate(keys):
        if index >= SANITIZE_MAX_KEYS:
            result['...'] = f"[{len(keys) - SANITIZE_MAX_KEYS} more keys]"
            break
        result[str(key)] = _sanitize(obj[key], depth + 1, ancestors)
    return result
