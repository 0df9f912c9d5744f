"""
Chatlog Interposition Layer

Reversible wrapping of callables that live in a slot of an object this
process does not own. A slot is a (holder, slotName) pair where the holder
is either a mapping (holder[slotName]) or a plain object (holder.slotName).

Invariants:
- At most one active InterpositionHandle per slot
- install() on a slot whose current value is our replacement is a no-op
  (presence is detected by comparing the slot value, not by a flag, so a
  slot reassigned by the host is re-captured on the next install)
- restore() writes back the exact original captured at install time
- restore() without an active handle is a no-op
- A missing or non-callable slot logs a warning and is left untouched

observeCall() builds the replacement used by the Event Pipeline: it always
invokes the original and returns its result unchanged; observer failures are
reported and never reach the caller.

Property of Uncompromising Sensors LLC.
"""

import functools
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from sdk.logging import getLogger


class _Missing:
    pass


_MISSING = _Missing()


@dataclass
class InterpositionHandle:
    """One active wrap of a slot"""
    holder: Any
    slotName: str
    original: Callable
    replacement: Callable


def readSlot(holder: Any, slotName: str) -> Any:
    """Current slot value, or _MISSING."""
    if isinstance(holder, Mapping):
        return holder.get(slotName, _MISSING)
    return getattr(holder, slotName, _MISSING)


def writeSlot(holder: Any, slotName: str, value: Any):
    if isinstance(holder, MutableMapping):
        holder[slotName] = value
    else:
        setattr(holder, slotName, value)


class Interposer:
    """
    Table of active interpositions, keyed per (holder, slot).

    The table keeps a reference to each holder while its wrap is active,
    so holder identity stays stable for the lifetime of the key.
    """

    def __init__(self):
        self.log = getLogger()
        self._handles: Dict[Tuple[int, str], InterpositionHandle] = {}

    def install(self, holder: Any, slotName: str,
                makeReplacement: Callable[[Callable], Callable]) -> Optional[InterpositionHandle]:
        """
        Wrap holder.slotName with makeReplacement(original).

        Returns:
            The active handle (new or existing), or None when the slot is
            missing / not callable.
        """
        key = (id(holder), slotName)
        current = readSlot(holder, slotName)

        existing = self._handles.get(key)
        if existing is not None:
            if current is existing.replacement:
                return existing
            # Host replaced the slot behind our back: drop the stale handle and re-capture
            self.log.warning("Interposed slot was reassigned externally, re-capturing", slot=slotName)
            del self._handles[key]

        if current is _MISSING or not callable(current):
            self.log.warning("Interposition target missing or not callable", slot=slotName,
                             holderType=type(holder).__name__)
            return None

        try:
            replacement = makeReplacement(current)
            writeSlot(holder, slotName, replacement)
        except Exception as e:
            self.log.warning(f"Interposition install failed: {e!r}", slot=slotName)
            return None

        handle = InterpositionHandle(holder=holder, slotName=slotName,
                                     original=current, replacement=replacement)
        self._handles[key] = handle
        self.log.debug("Interposed slot", slot=slotName)
        return handle

    def restore(self, holder: Any, slotName: str) -> bool:
        """
        Write the captured original back. Returns True if a handle was restored.

        A slot that no longer holds the replacement (reassigned, or its
        holder gone) is left as it is and the handle is dropped.
        """
        handle = self._handles.pop((id(holder), slotName), None)
        if handle is None:
            return False

        if readSlot(holder, slotName) is not handle.replacement:
            self.log.debug("Interposed slot no longer holds the replacement, dropping handle", slot=slotName)
            return False

        try:
            writeSlot(holder, slotName, handle.original)
        except Exception as e:
            self.log.warning(f"Interposition restore failed: {e!r}", slot=slotName)
            return False

        self.log.debug("Restored slot", slot=slotName)
        return True

    def restoreAll(self) -> int:
        restored = 0
        for handle in list(self._handles.values()):
            if self.restore(handle.holder, handle.slotName):
                restored += 1
        return restored

    def isInstalled(self, holder: Any, slotName: str) -> bool:
        handle = self._handles.get((id(holder), slotName))
        return handle is not None and readSlot(holder, slotName) is handle.replacement

    def getHandle(self, holder: Any, slotName: str) -> Optional[InterpositionHandle]:
        return self._handles.get((id(holder), slotName))

    def __len__(self):
        return len(self._handles)


def observeCall(original: Callable,
                after: Optional[Callable[[tuple, dict, Any], None]] = None,
                before: Optional[Callable[[tuple, dict], None]] = None,
                onError: Optional[Callable[[str, BaseException, tuple], None]] = None) -> Callable:
    """
    Build a replacement that forwards to original with pre/post observers.

    before(args, kwargs) runs first, after(args, kwargs, result) runs once the
    original returned. Observer exceptions go to onError(stage, error, args)
    and never alter the call; exceptions raised by the original propagate
    untouched. The original's return value (including an un-awaited
    coroutine) is handed back as-is.
    """

    def _report(stage, error, args):
        if onError is None:
            return
        try:
            onError(stage, error, args)
        except Exception:
            # Reporting is best-effort; the host call must complete regardless
            pass

    @functools.wraps(original)
    def replacement(*args, **kwargs):
        if before is not None:
            try:
                before(args, kwargs)
            except Exception as e:
                _report('before', e, args)

        result = original(*args, **kwargs)

        if after is not None:
            try:
                after(args, kwargs, result)
            except Exception as e:
                _report('after', e, args)

        return result

    replacement.__interposed__ = original
    return replacement
