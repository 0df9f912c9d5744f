"""
Chatlog Architectural Constants

Single source of truth for limits, setting keys, and wire markers shared
across the instrumentation engine. Everything that names a bound lives here.

Property of Uncompromising Sensors LLC.
"""

from typing import Dict


# Log Store capacity bounds (entries)
MIN_ENTRIES = 100
MAX_ENTRIES = 10_000
DEFAULT_MAX_ENTRIES = 1000


class SettingIds:
    """Setting keys read from the settings collaborator"""
    MESSAGE_LOGGING = 'MESSAGE_LOGGING'
    MESSAGE_LOGGING_DETAILED = 'MESSAGE_LOGGING_DETAILED'
    MESSAGE_LOGGING_MAX_ENTRIES = 'MESSAGE_LOGGING_MAX_ENTRIES'


SETTING_DEFAULTS = {
    SettingIds.MESSAGE_LOGGING: False,
    SettingIds.MESSAGE_LOGGING_DETAILED: False,
    SettingIds.MESSAGE_LOGGING_MAX_ENTRIES: DEFAULT_MAX_ENTRIES,
}


def settingUpdateEvent(key: str) -> str:
    """Event name emitted by Settings when a key changes."""
    return f"{key}.setting:update"


# Client slots interposed by the pipeline: slot name -> state path of its holder
CLIENT_SLOTS: Dict[str, tuple] = {
    'sendMessage': ('messaging', 'client'),
    'updateMessage': ('messaging',),
    'deleteMessage': ('messaging', 'client'),
}

# updateMessage updateType values with a dedicated event; everything else is a read
UPDATE_TYPE_SAVE = 3

# contentType -> messageType label
CONTENT_TYPE_NAMES = {
    0: 'TEXT',
    1: 'SNAP',
    2: 'IMAGE',
    3: 'VIDEO',
    4: 'AUDIO',
}

# Content extraction markers
MEDIA_CONTENT_MARKER = '[Media Content]'
UNKNOWN_CONTENT_MARKER = '[Unknown Content]'
MAX_CONTENT_CHARS = 1000

# Metadata / diagnostics sanitization bounds
SANITIZE_MAX_DEPTH = 3
SANITIZE_MAX_KEYS = 20
SANITIZE_MAX_ITEMS = 10
SANITIZE_MAX_STRING = 500
TRUNCATED_SUFFIX = '...[truncated]'
MAX_DEPTH_MARKER = '[Max Depth Reached]'
CIRCULAR_MARKER = '[Circular Reference]'
FILTERED_MARKER = '[Filtered]'
SERIALIZATION_ERROR_MARKER = '[Serialization Error]'
# JSON has no NaN / Infinity literals
NAN_MARKER = 'NaN'
INFINITY_MARKER = 'Infinity'
NEGATIVE_INFINITY_MARKER = '-Infinity'

# Diagnostics
SLOW_OPERATION_MS = 100.0
PERFORMANCE_WINDOW = 100
DIAGNOSTIC_PREFIX = '[MessageLog]'

# Enrichment grace period before an entry is appended without identity fields
DEFAULT_ENRICHMENT_TIMEOUT_SECONDS = 5.0

# Export file naming
EXPORT_FILE_PREFIX = 'chatlog-logs'
EMPTY_EXPORT = '[]'


def clampMaxEntries(value) -> int:
    """Clamp a requested capacity into [MIN_ENTRIES, MAX_ENTRIES]; falsy/invalid -> default."""
    try:
        requested = int(value) if value else DEFAULT_MAX_ENTRIES
    except (TypeError, ValueError):
        requested = DEFAULT_MAX_ENTRIES
    return max(MIN_ENTRIES, min(MAX_ENTRIES, requested))
