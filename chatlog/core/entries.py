"""
Chatlog Entry Types

Defines the log entry, query filter, and statistics shapes shared by the
Log Store, the Event Pipeline, and export tooling.

Invariants:
- Every entry carries conversationId and eventType
- timestamp is assigned exactly once, by the Log Store, at append
- Entries are immutable once appended (frozen dataclass)
- content is text only (producer-truncated, never raw bytes)

Wire format (export / import):
  {"timestamp": 1718000000000, "type": "MESSAGE_RECEIVED", "conversationId": "c1", ...}
  Absent optional fields are omitted rather than written as null.
"""

from dataclasses import dataclass, field, fields, asdict, replace
from typing import Any, Dict, Optional
from enum import Enum


class MessageEventType(str, Enum):
    """Event type enumeration (value = wire name)"""
    SENT = "MESSAGE_SENT"
    RECEIVED = "MESSAGE_RECEIVED"
    READ = "MESSAGE_READ"
    SAVED = "MESSAGE_SAVED"
    UNSAVED = "MESSAGE_UNSAVED"
    DELETED = "MESSAGE_DELETED"
    SNAP_OPENED = "SNAP_OPENED"
    MEDIA_SHARED = "MEDIA_SHARED"
    REACTION_ADDED = "REACTION_ADDED"
    REACTION_REMOVED = "REACTION_REMOVED"
    CONVERSATION_CLEARED = "CONVERSATION_CLEARED"

    @classmethod
    def parse(cls, value) -> 'MessageEventType':
        """Accept an enum member, a wire value ('MESSAGE_SENT') or a member name ('SENT')."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls[str(value).upper()]


@dataclass(frozen=True)
class LogEntry:
    """One observed event. Optional fields are None when not applicable."""
    eventType: MessageEventType
    conversationId: str
    timestamp: Optional[int] = None  # ms since epoch, set by LogStore.append
    conversationTitle: Optional[str] = None
    messageId: Optional[str] = None
    userId: Optional[str] = None
    username: Optional[str] = None
    displayName: Optional[str] = None
    content: Optional[str] = None
    messageType: Optional[str] = None
    metadata: Optional[Any] = None

    def withTimestamp(self, timestamp: int) -> 'LogEntry':
        """Return a copy stamped with the append time."""
        return replace(self, timestamp=timestamp)

    def withIdentity(self, username: Optional[str], displayName: Optional[str]) -> 'LogEntry':
        return replace(self, username=username, displayName=displayName)

    def toDict(self) -> Dict[str, Any]:
        """Convert to wire dict (absent fields omitted)"""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.name == 'eventType':
                result['type'] = value.value
            else:
                result[f.name] = value
        return result

    @classmethod
    def fromDict(cls, data: Dict[str, Any]) -> 'LogEntry':
        """Rebuild from wire dict; accepts 'type' or 'eventType' for the event type."""
        rawType = data.get('type', data.get('eventType'))
        if rawType is None or not data.get('conversationId'):
            raise ValueError("Log entry requires type and conversationId")

        known = {f.name for f in fields(cls)} - {'eventType'}
        kwargs = {k: v for k, v in data.items() if k in known}
        return cls(eventType=MessageEventType.parse(rawType), **kwargs)


@dataclass(frozen=True)
class LogFilter:
    """Query descriptor. All provided predicates apply conjunctively."""
    conversationId: Optional[str] = None
    userId: Optional[str] = None
    eventType: Optional[MessageEventType] = None
    startTime: Optional[int] = None  # ms, inclusive
    endTime: Optional[int] = None    # ms, inclusive
    limit: Optional[int] = None      # most recent N; <= 0 means no limit

    def matches(self, entry: LogEntry) -> bool:
        if self.conversationId is not None and entry.conversationId != self.conversationId:
            return False
        if self.userId is not None and entry.userId != self.userId:
            return False
        if self.eventType is not None and entry.eventType != self.eventType:
            return False
        if self.startTime is not None and (entry.timestamp or 0) < self.startTime:
            return False
        if self.endTime is not None and (entry.timestamp or 0) > self.endTime:
            return False
        return True

    def withoutLimit(self) -> 'LogFilter':
        return replace(self, limit=None)

    @property
    def effectiveLimit(self) -> Optional[int]:
        if self.limit is not None and self.limit > 0:
            return self.limit
        return None

    def toDict(self) -> Dict[str, Any]:
        d = {k: v for k, v in asdict(self).items() if v is not None}
        if self.eventType is not None:
            d['eventType'] = self.eventType.value
        return d

    @classmethod
    def fromDict(cls, data: Optional[Dict[str, Any]]) -> 'LogFilter':
        """Build from a loose dict (UI/console input). Unknown keys are ignored."""
        if not data:
            return cls()
        rawType = data.get('eventType', data.get('type'))
        return cls(
            conversationId=data.get('conversationId') or None,
            userId=data.get('userId') or None,
            eventType=MessageEventType.parse(rawType) if rawType else None,
            startTime=data.get('startTime'),
            endTime=data.get('endTime'),
            limit=data.get('limit'),
        )


@dataclass
class MostActiveConversation:
    id: str
    messageCount: int
    title: Optional[str] = None


@dataclass
class DateRange:
    start: int
    end: int


@dataclass
class LogStats:
    """Aggregate statistics over a (filtered) set of entries"""
    total: int = 0
    sent: int = 0
    received: int = 0
    activeConversations: int = 0
    mostActiveConversation: Optional[MostActiveConversation] = None
    dateRange: Optional[DateRange] = None
    byType: Dict[str, int] = field(default_factory=dict)

    def toDict(self) -> Dict[str, Any]:
        result = {
            'totalMessages': self.total,
            'messagesSent': self.sent,
            'messagesReceived': self.received,
            'conversationsActive': self.activeConversations,
            'byType': dict(self.byType),
        }
        if self.mostActiveConversation is not None:
            result['mostActiveConversation'] = {
                k: v for k, v in asdict(self.mostActiveConversation).items() if v is not None
            }
        if self.dateRange is not None:
            result['dateRange'] = asdict(self.dateRange)
        return result
