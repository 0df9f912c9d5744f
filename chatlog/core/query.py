"""
Chatlog Query Implementation

Read-only filtering, search, and aggregation over a sequence of log entries.
Never mutates its input; ordering of results follows input (insertion) order
unless newestFirst is requested.

Query Flow:
  1. Validate filter (types, time range)
  2. Apply predicates conjunctively
  3. Slice to limit from the most-recent end
  4. Optionally sort by timestamp descending for presentation
"""

from typing import Dict, Iterable, List, Optional

from .entries import (
    LogEntry, LogFilter, LogStats, MessageEventType, MostActiveConversation, DateRange
)


class QueryError(Exception):
    """Query validation error"""
    pass


def validateFilter(logFilter: Optional[LogFilter]) -> LogFilter:
    """
    Validate and normalise a filter.

    Raises:
        QueryError: If a field has the wrong type or the time range is inverted
    """
    if logFilter is None:
        return LogFilter()
    if not isinstance(logFilter, LogFilter):
        raise QueryError(f"Invalid filter type: {type(logFilter).__name__}")

    if logFilter.eventType is not None and not isinstance(logFilter.eventType, MessageEventType):
        raise QueryError(f"Invalid eventType: {logFilter.eventType!r}")

    for name in ('startTime', 'endTime', 'limit'):
        value = getattr(logFilter, name)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise QueryError(f"Invalid {name}: {value!r}")

    if logFilter.startTime is not None and logFilter.endTime is not None:
        if logFilter.startTime > logFilter.endTime:
            raise QueryError("startTime must be <= endTime")

    return logFilter


def applyFilter(entries: Iterable[LogEntry], logFilter: Optional[LogFilter] = None,
                newestFirst: bool = False) -> List[LogEntry]:
    """
    Apply filter predicates, then the limit, then optional presentation sort.

    Args:
        entries: Entries in insertion order
        logFilter: Filter (None = everything)
        newestFirst: Sort the result by timestamp descending (stable)

    Returns:
        New list of matching entries
    """
    logFilter = validateFilter(logFilter)
    result = [entry for entry in entries if logFilter.matches(entry)]

    limit = logFilter.effectiveLimit
    if limit is not None and len(result) > limit:
        result = result[-limit:]

    if newestFirst:
        # Reverse first so equal timestamps keep newest-inserted first
        result = sorted(reversed(result), key=lambda e: e.timestamp or 0, reverse=True)

    return result


def searchEntries(entries: Iterable[LogEntry], text: str) -> List[LogEntry]:
    """Case-insensitive match on content, username, displayName, conversationTitle."""
    needle = text.lower()
    if not needle:
        return list(entries)

    def hit(entry: LogEntry) -> bool:
        for value in (entry.content, entry.username, entry.displayName, entry.conversationTitle):
            if value and needle in value.lower():
                return True
        return False

    return [entry for entry in entries if hit(entry)]


def computeStats(entries: Iterable[LogEntry]) -> LogStats:
    """
    Single pass aggregation.

    Most active conversation: highest entry count; ties go to the
    conversation seen first in input order.
    """
    stats = LogStats()
    counts: Dict[str, int] = {}
    titles: Dict[str, str] = {}
    earliest = None
    latest = None

    for entry in entries:
        stats.total += 1
        if entry.eventType == MessageEventType.SENT:
            stats.sent += 1
        elif entry.eventType == MessageEventType.RECEIVED:
            stats.received += 1
        stats.byType[entry.eventType.value] = stats.byType.get(entry.eventType.value, 0) + 1

        counts[entry.conversationId] = counts.get(entry.conversationId, 0) + 1
        if entry.conversationTitle and entry.conversationId not in titles:
            titles[entry.conversationId] = entry.conversationTitle

        if entry.timestamp is not None:
            earliest = entry.timestamp if earliest is None else min(earliest, entry.timestamp)
            latest = entry.timestamp if latest is None else max(latest, entry.timestamp)

    if stats.total == 0:
        return stats

    stats.activeConversations = len(counts)

    # dicts preserve first-seen order; strict > keeps the first on ties
    bestId, bestCount = None, 0
    for conversationId, count in counts.items():
        if count > bestCount:
            bestId, bestCount = conversationId, count

    if bestId is not None:
        stats.mostActiveConversation = MostActiveConversation(
            id=bestId, messageCount=bestCount, title=titles.get(bestId)
        )

    if earliest is not None:
        stats.dateRange = DateRange(start=earliest, end=latest)

    return stats
