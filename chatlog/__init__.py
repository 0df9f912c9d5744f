"""
Package init for chatlog
"""

from chatlog.core.entries import LogEntry, LogFilter, LogStats, MessageEventType
from chatlog.core.logStore import LogStore
from chatlog.core.pipeline import EventPipeline
from chatlog.core.settings import Settings
from chatlog.core.store import ObservableStore

__all__ = ['LogEntry', 'LogFilter', 'LogStats', 'MessageEventType',
           'LogStore', 'EventPipeline', 'Settings', 'ObservableStore']
