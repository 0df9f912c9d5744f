"""
Chatlog Snapshot Tracker

Infers discrete events from successive observations of mutable, keyed
entities (messages keyed by message id).

Transitions reported:
- isNew: first observation of a key (suppressed when the caller marks the
  item as self-authored)
- readReceiptAdded: readBy went from empty to non-empty; newReader is the
  last reader listed

All other field changes are ignored. Each observation is a dict lookup plus
a shallow copy.

Table lifecycle:
- created on first observation, replaced on a read-receipt transition
- sweep(liveKeys) evicts keys absent from the latest full observation
- clear() empties the table (pipeline disable)
"""

import copy
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from .content import getReadBy


@dataclass(frozen=True)
class Transition:
    """Result of one observation"""
    isNew: bool = False
    readReceiptAdded: bool = False
    newReader: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.isNew or self.readReceiptAdded


NO_TRANSITION = Transition()


@dataclass
class TrackedEntitySnapshot:
    """Shadow copy of the last-observed value of one entity"""
    fields: Any
    readCount: int


def _shallowCopy(value: Any) -> Any:
    if isinstance(value, Mapping):
        return dict(value)
    try:
        return copy.copy(value)
    except Exception:
        return value


class SnapshotTracker:
    """Shadow table of entity snapshots. Not shared outside its owner."""

    def __init__(self):
        self._snapshots: Dict[str, TrackedEntitySnapshot] = {}

    def observe(self, key: str, currentValue: Any, isOwn: bool = False) -> Transition:
        """
        Compare currentValue against the stored snapshot for key.

        Args:
            key: Entity key (message id)
            currentValue: Current entity value (dict or attribute object)
            isOwn: True when the entity was authored by the current session

        Returns:
            Transition describing what changed (NO_TRANSITION if nothing load-bearing)
        """
        readBy = getReadBy(currentValue)
        tracked = self._snapshots.get(key)

        if tracked is None:
            self._snapshots[key] = TrackedEntitySnapshot(_shallowCopy(currentValue), len(readBy))
            return Transition(isNew=not isOwn)

        if tracked.readCount == 0 and readBy:
            self._snapshots[key] = TrackedEntitySnapshot(_shallowCopy(currentValue), len(readBy))
            return Transition(readReceiptAdded=True, newReader=readBy[-1])

        return NO_TRANSITION

    def sweep(self, liveKeys: Iterable[str]) -> int:
        """Evict snapshots whose key is not in liveKeys. Returns eviction count."""
        live = set(liveKeys)
        stale = [key for key in self._snapshots if key not in live]
        for key in stale:
            del self._snapshots[key]
        return len(stale)

    def clear(self):
        self._snapshots.clear()

    def __contains__(self, key) -> bool:
        return key in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)
