"""
Console commands for message logging.

Operator-facing helpers that wrap the pipeline's public API and the
settings collaborator, writing plain-text reports to a stream.

Usage:
    commands = MessageLoggingCommands(pipeline, settings)
    commands.status()
    commands.recent(24)
    commands.search("hello")
    commands.export('./exports')
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from sdk.logging import getLogger
from chatlog.core.contract import SettingIds
from chatlog.core.entries import LogEntry, LogFilter
from chatlog.core.export import ExportError, exportFileName, writeExportFile


SEARCH_ROW_LIMIT = 20


HELP_TEXT = """\
=== Message Logging Commands ===

status()                        - Show current status
enable()                        - Enable message logging
disable()                       - Disable message logging
enableDetailed()                - Enable detailed console logs
disableDetailed()               - Disable detailed console logs
recent(hours=1)                 - Show recent activity
search(query)                   - Search logs by content, user or conversation
export(directory)               - Write all logs to a JSON file
exportFiltered(filter, dir)     - Write filtered logs to a JSON file
clear(confirm=False)            - Clear all logs (requires confirm=True)
help()                          - Show this help
"""


def _clip(value: Optional[str], width: int) -> str:
    if not value:
        return '-'
    return value if len(value) <= width else value[:width]


def _formatTable(rows: List[Dict[str, str]]) -> List[str]:
    """Render rows (same keys) as aligned text columns."""
    if not rows:
        return []
    headers = list(rows[0].keys())
    widths = {h: max(len(h), *(len(row[h]) for row in rows)) for h in headers}
    lines = ['  '.join(h.ljust(widths[h]) for h in headers)]
    lines.append('  '.join('-' * widths[h] for h in headers))
    for row in rows:
        lines.append('  '.join(row[h].ljust(widths[h]) for h in headers))
    return lines


class MessageLoggingCommands:
    """Console command surface for the message logging pipeline"""

    def __init__(self, pipeline, settings, out=None):
        self.log = getLogger()
        self.pipeline = pipeline
        self.settings = settings
        self.out = out or sys.stdout

    def _print(self, text: str = ''):
        self.out.write(text + '\n')

    def _printEntries(self, entries: Sequence[LogEntry], contentWidth: int, withConversation: bool):
        rows = []
        for entry in entries:
            row = {
                'Time': datetime.fromtimestamp((entry.timestamp or 0) / 1000).strftime('%Y-%m-%d %H:%M:%S'),
                'Type': entry.eventType.value,
                'User': entry.displayName or entry.username or 'You',
            }
            if withConversation:
                row['Conversation'] = entry.conversationTitle or entry.conversationId
            row['Content'] = _clip(entry.content, contentWidth)
            rows.append(row)
        for line in _formatTable(rows):
            self._print(line)

    # =========================================================================
    # Status and toggles
    # =========================================================================

    def status(self) -> Dict[str, Any]:
        enabled = self.settings.getSetting(SettingIds.MESSAGE_LOGGING)
        detailed = self.settings.getSetting(SettingIds.MESSAGE_LOGGING_DETAILED)
        maxEntries = self.settings.getSetting(SettingIds.MESSAGE_LOGGING_MAX_ENTRIES)
        stats = self.pipeline.getStats()

        self._print('=== Message Logging Status ===')
        self._print(f'Enabled: {enabled}')
        self._print(f'Detailed logging: {detailed}')
        self._print(f'Max entries: {maxEntries}')
        self._print(f'Total messages logged: {stats.total}')
        self._print(f'Messages sent: {stats.sent}')
        self._print(f'Messages received: {stats.received}')
        self._print(f'Active conversations: {stats.activeConversations}')
        if not enabled:
            self._print()
            self._print('To enable message logging, run: enable()')

        return {'enabled': enabled, 'detailed': detailed, 'maxEntries': maxEntries, **stats.toDict()}

    def enable(self):
        self.settings.setSetting(SettingIds.MESSAGE_LOGGING, True)
        self._print('Message logging enabled')

    def disable(self):
        self.settings.setSetting(SettingIds.MESSAGE_LOGGING, False)
        self._print('Message logging disabled')

    def enableDetailed(self):
        self.settings.setSetting(SettingIds.MESSAGE_LOGGING_DETAILED, True)
        self._print('Detailed message logging enabled')

    def disableDetailed(self):
        self.settings.setSetting(SettingIds.MESSAGE_LOGGING_DETAILED, False)
        self._print('Detailed message logging disabled')

    # =========================================================================
    # Reports
    # =========================================================================

    def recent(self, hours: float = 1) -> List[LogEntry]:
        entries = self.pipeline.recentLogs(hours)
        self._print(f"=== Recent Activity (Last {hours:g} hour{'' if hours == 1 else 's'}) ===")
        if not entries:
            self._print('No recent message activity found')
            return entries
        self._printEntries(entries, contentWidth=50, withConversation=True)
        return entries

    def search(self, query: str) -> List[LogEntry]:
        results = self.pipeline.searchLogs(query)
        self._print(f'=== Search Results for "{query}" ===')
        if not results:
            self._print('No matching logs found')
            return results
        self._printEntries(results[:SEARCH_ROW_LIMIT], contentWidth=100, withConversation=False)
        if len(results) > SEARCH_ROW_LIMIT:
            self._print(f'... and {len(results) - SEARCH_ROW_LIMIT} more results')
        return results

    # =========================================================================
    # Export and clear
    # =========================================================================

    def export(self, directory='.') -> Optional[Path]:
        """Write every entry to chatlog-logs-all-<date>.json under directory."""
        return self._writeExport(self.pipeline.exportLogs(), directory, exportFileName())

    def exportFiltered(self, logFilter, directory='.') -> Optional[Path]:
        """Write entries matching logFilter (LogFilter or dict) to a dated JSON file."""
        try:
            if not isinstance(logFilter, LogFilter):
                logFilter = LogFilter.fromDict(logFilter)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            self._print(f'Failed to export logs: invalid filter ({e})')
            return None
        return self._writeExport(self.pipeline.exportFilteredLogs(logFilter), directory,
                                 exportFileName(logFilter))

    def _writeExport(self, text: str, directory, fileName: str) -> Optional[Path]:
        try:
            path = writeExportFile(text, Path(directory), fileName)
        except ExportError as e:
            self.log.error(f"Export failed: {e}")
            self._print(f'Failed to export logs: {e}')
            return None
        self._print(f'Logs exported successfully: {path}')
        return path

    def clear(self, confirm: bool = False) -> int:
        if not confirm:
            self._print('Refusing to clear logs without confirmation: clear(confirm=True)')
            return 0
        removed = self.pipeline.clearLogs()
        self._print(f'All message logs cleared ({removed} removed)')
        return removed

    def help(self):
        self._print(HELP_TEXT)
