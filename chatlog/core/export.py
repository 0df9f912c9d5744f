"""
Chatlog Export

Structured serialization of log entries (pretty-printed JSON via orjson) and
export file writing.

Contract:
- parseEntries(serializeEntries(entries)) == entries, field for field
- exportEntries() never raises: a serialization failure yields '[]'
- Export files are named chatlog-logs-<suffix>-YYYY-MM-DD.json

Property of Uncompromising Sensors LLC.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

import orjson

from sdk.logging import getLogger
from .contract import EMPTY_EXPORT, EXPORT_FILE_PREFIX
from .entries import LogEntry, LogFilter


log = getLogger()


class ExportError(Exception):
    """Export serialization or write error"""
    pass


def serializeEntries(entries: Sequence[LogEntry]) -> str:
    """
    Serialize entries to pretty-printed JSON.

    Raises:
        ExportError: If an entry cannot be serialized
    """
    try:
        payload = [entry.toDict() for entry in entries]
        return orjson.dumps(payload, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS).decode('utf-8')
    except (TypeError, orjson.JSONEncodeError) as e:
        raise ExportError(f"Serialization failed: {e}")


def parseEntries(text: str) -> List[LogEntry]:
    """
    Parse an export back into entries.

    Raises:
        ExportError: If the text is not a JSON array of entry objects
    """
    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError as e:
        raise ExportError(f"Invalid export JSON: {e}")

    if not isinstance(data, list):
        raise ExportError("Export must be a JSON array")

    try:
        return [LogEntry.fromDict(item) for item in data]
    except (ValueError, KeyError, TypeError) as e:
        raise ExportError(f"Invalid log entry: {e}")


def exportEntries(entries: Sequence[LogEntry]) -> str:
    """Serialize for UI/console export. Falls back to '[]' instead of raising."""
    try:
        return serializeEntries(entries)
    except ExportError as e:
        log.error(f"Export serialization failed: {e}", entryCount=len(entries))
        return EMPTY_EXPORT


def exportFileName(logFilter: Optional[LogFilter] = None, now: Optional[datetime] = None) -> str:
    """
    Build the export file name.

    No filter -> 'chatlog-logs-all-2024-06-10.json'
    Filter    -> 'chatlog-logs-MESSAGE_SENT-2024-06-01-2024-06-10-2024-06-10.json'
                 (type / start / end parts present only when set; 'filtered' otherwise)
    """
    now = now or datetime.now(timezone.utc)
    day = now.strftime('%Y-%m-%d')

    if logFilter is None:
        return f"{EXPORT_FILE_PREFIX}-all-{day}.json"

    parts = []
    if logFilter.eventType is not None:
        parts.append(logFilter.eventType.value)
    for ms in (logFilter.startTime, logFilter.endTime):
        if ms is not None:
            parts.append(datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime('%Y-%m-%d'))
    suffix = '-'.join(parts) or 'filtered'
    return f"{EXPORT_FILE_PREFIX}-{suffix}-{day}.json"


def writeExportFile(text: str, directory: Path, fileName: str) -> Path:
    """
    Write export text to directory/fileName.

    Raises:
        ExportError: On filesystem failure
    """
    try:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / fileName
        path.write_text(text, encoding='utf-8')
    except OSError as e:
        raise ExportError(f"Export write failed: {e}")

    log.info(f"Export written: {path}", bytes=len(text))
    return path
