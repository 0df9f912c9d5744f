"""
Chatlog Diagnostics Facade

Leveled self-diagnostics for the instrumentation engine, layered on the
sdk.logging structured logger.

Gating:
- Nothing is emitted unless MESSAGE_LOGGING is on
- MESSAGE_LOGGING_DETAILED raises the ceiling from INFO to VERBOSE

Guarantees:
- Emit calls never raise: a failing primary sink falls back to stderr,
  and a failing fallback is dropped
- Timers feed a rolling window of the last 100 durations (count / min /
  max / average); anything slower than 100 ms is reported as a warning
- Purely observational; nothing here feeds back into pipeline decisions

Property of Uncompromising Sensors LLC.
"""

import logging
import sys
import time
from collections import deque
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Dict, Optional

from sdk.logging import getLogger
from .contract import SettingIds, SLOW_OPERATION_MS, PERFORMANCE_WINDOW, DIAGNOSTIC_PREFIX
from .sanitize import sanitizeForLogging


class MessageDebugLevel(IntEnum):
    """Verbosity ceiling (lower = more severe)"""
    ERROR = 0
    WARN = 1
    INFO = 2
    DEBUG = 3
    VERBOSE = 4


# Structured sink method per level (sdk.logging loggers carry .verbose)
_SINK_METHODS = {
    MessageDebugLevel.ERROR: 'error',
    MessageDebugLevel.WARN: 'warning',
    MessageDebugLevel.INFO: 'info',
    MessageDebugLevel.DEBUG: 'debug',
    MessageDebugLevel.VERBOSE: 'verbose',
}


class DiagnosticTimer:
    """Handle returned by createTimer(); end() reports and returns elapsed ms."""

    def __init__(self, debugger: 'MessageDebugger', label: str):
        self._debugger = debugger
        self.label = label
        self._start = time.perf_counter()
        self.durationMs: Optional[float] = None

    def end(self, **metadata) -> float:
        self.durationMs = (time.perf_counter() - self._start) * 1000.0
        self._debugger.recordDuration(self.durationMs)
        self._debugger.logPerformance(self.label, self.durationMs, metadata or None)
        return self.durationMs


class MessageDebugger:
    """
    Diagnostics facade.

    Args:
        settings: Settings reader exposing getSetting(key)
        sink: Primary structured logger (default: 'chatlog.messageLog')
        fallback: Stream used when the primary sink fails (default: sys.stderr)
    """

    def __init__(self, settings, sink: Optional[logging.Logger] = None, fallback=None):
        self.settings = settings
        self.sink = sink if sink is not None else getLogger('chatlog.messageLog')
        self.fallback = fallback
        self._durations: deque = deque(maxlen=PERFORMANCE_WINDOW)
        self._resetCounters()

    def _resetCounters(self):
        self.messagesLogged = 0
        self.errorsEncountered = 0
        self.lastLogTime = 0
        self.timedOperations = 0
        self._durations.clear()

    # =========================================================================
    # Gating
    # =========================================================================

    @property
    def isLoggingEnabled(self) -> bool:
        try:
            return self.settings.getSetting(SettingIds.MESSAGE_LOGGING) is True
        except Exception:
            return False

    @property
    def currentLevel(self) -> MessageDebugLevel:
        try:
            detailed = bool(self.settings.getSetting(SettingIds.MESSAGE_LOGGING_DETAILED))
        except Exception:
            detailed = False
        return MessageDebugLevel.VERBOSE if detailed else MessageDebugLevel.INFO

    def shouldLog(self, level: MessageDebugLevel) -> bool:
        return self.isLoggingEnabled and level <= self.currentLevel

    # =========================================================================
    # Emit
    # =========================================================================

    def _emit(self, level: MessageDebugLevel, message: str, fields: Dict[str, Any]):
        if not self.shouldLog(level):
            return

        text = f"{DIAGNOSTIC_PREFIX}[{level.name}] {message}"
        try:
            safeFields = {k: sanitizeForLogging(v) for k, v in fields.items()}
            method = getattr(self.sink, _SINK_METHODS[level])
            method(text, **safeFields)
            if level == MessageDebugLevel.ERROR:
                self.errorsEncountered += 1
        except Exception as e:
            self._fallbackEmit(text, fields, e)
        finally:
            self.messagesLogged += 1
            self.lastLogTime = int(time.time() * 1000)

    def _fallbackEmit(self, text: str, fields: Dict[str, Any], error: BaseException):
        try:
            stream = self.fallback or sys.stderr
            stream.write(f"{datetime.now(timezone.utc).isoformat()} {text} {fields!r} (sink error: {error!r})\n")
        except Exception:
            # Last resort: diagnostics must never raise into the host path
            pass

    def error(self, message: str, **fields):
        self._emit(MessageDebugLevel.ERROR, message, fields)

    def warn(self, message: str, **fields):
        self._emit(MessageDebugLevel.WARN, message, fields)

    def info(self, message: str, **fields):
        self._emit(MessageDebugLevel.INFO, message, fields)

    def debug(self, message: str, **fields):
        self._emit(MessageDebugLevel.DEBUG, message, fields)

    def verbose(self, message: str, **fields):
        self._emit(MessageDebugLevel.VERBOSE, message, fields)

    # =========================================================================
    # Structured helpers
    # =========================================================================

    def logMessageEvent(self, eventType: str, data: Any):
        if not self.shouldLog(MessageDebugLevel.DEBUG):
            return
        self.debug(f"Message Event: {eventType}", type=eventType,
                   timestamp=int(time.time() * 1000), data=data)

    def logStateChange(self, oldState: Any, newState: Any, context: Optional[str] = None):
        if not self.shouldLog(MessageDebugLevel.DEBUG):
            return
        self.debug("State Change", context=context or 'Unknown', oldState=oldState, newState=newState)

    def logAPICall(self, method: str, args: Any, result: Any = None, error: Any = None):
        if error is not None:
            self.error(f"API Call Failed: {method}", method=method, args=args, error=error)
        else:
            self.verbose(f"API Call: {method}", method=method, args=args, result=result)

    def logPerformance(self, operation: str, durationMs: float, metadata: Any = None):
        if durationMs > SLOW_OPERATION_MS:
            self.warn(f"Slow operation detected: {operation}", operation=operation,
                      duration=f"{durationMs:.2f}ms", metadata=metadata)
        else:
            self.verbose(f"Performance: {operation}", operation=operation,
                         duration=f"{durationMs:.2f}ms", metadata=metadata)

    # =========================================================================
    # Timers and metrics
    # =========================================================================

    def createTimer(self, label: str) -> DiagnosticTimer:
        return DiagnosticTimer(self, label)

    def recordDuration(self, durationMs: float):
        self._durations.append(durationMs)
        self.timedOperations += 1

    def getMetrics(self) -> Dict[str, Any]:
        window = list(self._durations)
        return {
            'messagesLogged': self.messagesLogged,
            'errorsEncountered': self.errorsEncountered,
            'lastLogTime': self.lastLogTime,
            'timedOperations': self.timedOperations,
            'performanceMetrics': {
                'sampleCount': len(window),
                'averageLogTime': sum(window) / len(window) if window else 0.0,
                'maxLogTime': max(window) if window else 0.0,
                'minLogTime': min(window) if window else None,
            },
        }

    def resetMetrics(self):
        self._resetCounters()
        self.info("Debug metrics reset")

    def dumpDebugInfo(self) -> Optional[Dict[str, Any]]:
        """Snapshot of level, metrics and settings; None while logging is disabled."""
        if not self.isLoggingEnabled:
            return None

        info = {
            'currentLevel': self.currentLevel.name,
            'isLoggingEnabled': True,
            'metrics': self.getMetrics(),
            'settings': {
                'messageLogging': self.settings.getSetting(SettingIds.MESSAGE_LOGGING),
                'detailedLogging': self.settings.getSetting(SettingIds.MESSAGE_LOGGING_DETAILED),
                'maxEntries': self.settings.getSetting(SettingIds.MESSAGE_LOGGING_MAX_ENTRIES),
            },
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }
        self.info("Debug Info", **info)
        return info
