"""
In-process settings collaborator.

Holds the enable / detail / capacity flags the pipeline and diagnostics read
by key, and notifies listeners on change with '<KEY>.setting:update' events.
Values are process memory only; a config file can seed them at startup.
"""

from typing import Any, Callable, Dict, List, Optional

from sdk.logging import getLogger
from .contract import SETTING_DEFAULTS, settingUpdateEvent


class Settings:
    """Key/value settings with change listeners"""

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self.log = getLogger()
        self._values: Dict[str, Any] = dict(SETTING_DEFAULTS)
        if values:
            self._values.update(values)
        self._listeners: Dict[str, List[Callable]] = {}

    def getSetting(self, key: str) -> Any:
        return self._values.get(key)

    def setSetting(self, key: str, value: Any):
        """Set a value and notify '<key>.setting:update' listeners if it changed."""
        previous = self._values.get(key)
        self._values[key] = value
        if previous == value:
            return

        event = settingUpdateEvent(key)
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(value)
            except Exception as e:
                self.log.error(f"Setting listener failed: {e!r}", key=key, exc_info=True)

    def on(self, event: str, callback: Callable[[Any], Any]):
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Callable[[Any], Any]):
        callbacks = self._listeners.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._values)
