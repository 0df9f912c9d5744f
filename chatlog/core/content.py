"""
Message shape helpers: field access, content extraction, type labelling.

Host messages arrive as dicts or as attribute objects; both are read through
getField(). Content extraction is lossy on purpose: literal text is kept
(truncated), anything else is reduced to a bracketed marker.
"""

from collections.abc import Mapping
from typing import Any, Optional

from .contract import (
    CONTENT_TYPE_NAMES, MEDIA_CONTENT_MARKER, UNKNOWN_CONTENT_MARKER, MAX_CONTENT_CHARS
)
from .sanitize import truncateText


def getField(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a mapping or an attribute object."""
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def extractMessageContent(message: Any) -> Optional[str]:
    """
    Reduce a message to loggable text.

    Order: literal text -> '[Media Content]' when a payload exists ->
    '[<type>]' when a type tag exists -> '[Unknown Content]'.
    """
    if message is None:
        return None

    text = getField(message, 'text')
    if isinstance(text, str) and text:
        return truncateText(text, MAX_CONTENT_CHARS)

    if getField(message, 'content'):
        return MEDIA_CONTENT_MARKER

    typeTag = getField(message, 'type')
    if typeTag:
        return f"[{typeTag}]"

    return UNKNOWN_CONTENT_MARKER


def getMessageType(message: Any) -> Optional[str]:
    """Label a message by its numeric contentType, else its type tag."""
    if message is None:
        return None

    contentType = getField(message, 'contentType')
    if contentType is not None and contentType != '':
        if isinstance(contentType, int) and not isinstance(contentType, bool):
            return CONTENT_TYPE_NAMES.get(contentType, f"UNKNOWN_TYPE_{contentType}")
        return str(contentType)

    return getField(message, 'type') or 'UNKNOWN'


def getReadBy(message: Any) -> list:
    """readBy as an ordered list (sets/tuples/None normalised)."""
    readBy = getField(message, 'readBy')
    if not readBy:
        return []
    if isinstance(readBy, (str, bytes)):
        return [readBy]
    return list(readBy)
