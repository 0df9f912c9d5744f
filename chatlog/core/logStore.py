"""
Chatlog Log Store

Capped, append-only, in-memory event log.

Invariants:
- len(store) <= capacity after every operation
- Eviction is FIFO from the head: the retained entries are exactly the most
  recent `capacity` insertions, in insertion order
- timestamp is stamped once at append (ms since epoch) and is
  non-decreasing in insertion order, even if the wall clock steps back
- Reads never mutate store order; newest-first is a read-time sort
- capacity is clamped to [100, 10000]

Owned by a single EventPipeline. External callers only read, export,
clear, and resize. No locking: all mutation happens on one event loop and
append re-checks capacity with no suspension point in between.
"""

import time
from collections import deque
from typing import Callable, Iterator, List, Optional

from sdk.logging import getLogger
from .contract import DEFAULT_MAX_ENTRIES, clampMaxEntries
from .entries import LogEntry, LogFilter, LogStats, MessageEventType
from .query import applyFilter, searchEntries, computeStats
from .export import exportEntries


def nowMs() -> int:
    return int(time.time() * 1000)


class LogStore:
    """Capped ordered collection of LogEntry"""

    def __init__(self, capacity: int = DEFAULT_MAX_ENTRIES, clock: Callable[[], int] = nowMs):
        """
        Args:
            capacity: Maximum entries retained (clamped to [100, 10000])
            clock: Millisecond wall clock used for append timestamps
        """
        self.log = getLogger()
        self._entries: deque = deque()
        self._capacity = clampMaxEntries(capacity)
        self._clock = clock
        self._lastTimestamp = 0
        self.appendedTotal = 0
        self.evictedTotal = 0

    # =========================================================================
    # Mutation
    # =========================================================================

    def append(self, entry: LogEntry) -> LogEntry:
        """
        Stamp and append an entry, evicting from the head while over capacity.

        Returns:
            The stamped entry as stored
        """
        timestamp = max(self._clock(), self._lastTimestamp)
        self._lastTimestamp = timestamp

        stamped = entry.withTimestamp(timestamp)
        self._entries.append(stamped)
        self.appendedTotal += 1
        self._prune()
        return stamped

    def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        previousCount = len(self._entries)
        self._entries.clear()
        self.log.info("Message logs cleared", previousCount=previousCount)
        return previousCount

    def setCapacity(self, capacity) -> int:
        """Clamp and apply a new capacity, pruning immediately. Returns the effective capacity."""
        self._capacity = clampMaxEntries(capacity)
        evicted = self._prune()
        if evicted:
            self.log.info("Capacity reduced, pruned oldest entries", capacity=self._capacity, evicted=evicted)
        return self._capacity

    def _prune(self) -> int:
        evicted = 0
        while len(self._entries) > self._capacity:
            self._entries.popleft()
            evicted += 1
        self.evictedTotal += evicted
        return evicted

    # =========================================================================
    # Read API
    # =========================================================================

    @property
    def capacity(self) -> int:
        return self._capacity

    def query(self, logFilter: Optional[LogFilter] = None, newestFirst: bool = False) -> List[LogEntry]:
        """
        Filtered read.

        Raises:
            QueryError: On an invalid filter
        """
        return applyFilter(self._entries, logFilter, newestFirst=newestFirst)

    def stats(self, logFilter: Optional[LogFilter] = None) -> LogStats:
        return computeStats(self.query(logFilter))

    def search(self, text: str, logFilter: Optional[LogFilter] = None) -> List[LogEntry]:
        return searchEntries(self.query(logFilter, newestFirst=True), text)

    def recent(self, hours: float = 24) -> List[LogEntry]:
        """Entries stamped within the last `hours`, newest first."""
        endTime = max(self._clock(), self._lastTimestamp)
        startTime = endTime - int(hours * 3600 * 1000)
        return self.query(LogFilter(startTime=startTime, endTime=endTime), newestFirst=True)

    # Convenience filters (newest first)

    def byConversation(self, conversationId: str, limit: Optional[int] = None) -> List[LogEntry]:
        return self.query(LogFilter(conversationId=conversationId, limit=limit), newestFirst=True)

    def byUser(self, userId: str, limit: Optional[int] = None) -> List[LogEntry]:
        return self.query(LogFilter(userId=userId, limit=limit), newestFirst=True)

    def byType(self, eventType, limit: Optional[int] = None) -> List[LogEntry]:
        return self.query(LogFilter(eventType=MessageEventType.parse(eventType), limit=limit), newestFirst=True)

    def byTimeRange(self, startTime: int, endTime: int, limit: Optional[int] = None) -> List[LogEntry]:
        return self.query(LogFilter(startTime=startTime, endTime=endTime, limit=limit), newestFirst=True)

    def export(self, logFilter: Optional[LogFilter] = None) -> str:
        """query() followed by structured serialization. Never raises; '[]' on failure."""
        try:
            entries = self.query(logFilter)
        except Exception as e:
            self.log.error(f"Export query failed: {e}")
            return exportEntries([])
        return exportEntries(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(list(self._entries))
