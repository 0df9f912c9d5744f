"""
Hierarchical structured logger shared by chatlog components.

Features:
- Auto-detects logger hierarchy from call stack (computed once, cached)
- Optional log directory with size-based rotation
- Extra VERBOSE level below DEBUG for high-volume instrumentation output
- Structured field logging: log.info("Message", key=value)

Usage:
    from sdk.logging import getLogger

    # Class-level (compute once in __init__)
    class LogStore:
        def __init__(self):
            self.log = getLogger()  # Auto: 'chatlog.core.logStore.LogStore'

        def clear(self):
            self.log.info("Cleared", previousCount=12)

    # Module-level (compute once at import)
    log = getLogger()

Property of Uncompromising Sensors LLC.
"""

# Imports
import inspect, logging, logging.handlers, socket
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone as tz


# Custom level for per-call instrumentation chatter
VERBOSE = 5
logging.addLevelName(VERBOSE, 'VERBOSE')

# Global state
_hostname = socket.gethostname()
_configured = False
_fileHandlers = {}  # Singleton cache: logPath -> handler
_config = {
    'logDir': None,                 # None = console only
    'maxBytes': 10_000_000,
    'backupCount': 5,
    'console': True,
    'level': logging.INFO,
    'utc': False
}

# LogRecord attributes that structured fields must not overwrite
_RESERVED = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName',
    'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'hostname', 'asctime', 'taskName'
}


def configureLogging(logDir: Optional[str] = None, maxBytes: int = 10_000_000,
                     backupCount: int = 5, console: bool = True,
                     level: str = 'INFO', utc: bool = False):
    """
    Configure global logging settings (call once at app startup).

    Args:
        logDir: Directory for rotating log files (default: None, console only)
        maxBytes: Maximum size per log file before rotation (default: 10MB)
        backupCount: Number of backup files to keep per app (default: 5)
        console: Also log to console (default: True)
        level: Minimum log level name, VERBOSE allowed (default: 'INFO')
        utc: Use UTC timestamps (default: False, uses local time)
    """
    global _configured

    levelNo = logging.getLevelName(level.upper())
    if not isinstance(levelNo, int):
        levelNo = logging.INFO

    _config.update({'logDir': logDir, 'maxBytes': maxBytes, 'backupCount': backupCount,
                    'console': console, 'level': levelNo, 'utc': utc})

    if logDir:
        Path(logDir).mkdir(parents=True, exist_ok=True)
    _configured = True


def _autoDetectName() -> str:
    """Auto-detect logger name from call stack. Returns hierarchy like: 'chatlog.core.pipeline.EventPipeline'"""

    frame = inspect.currentframe()
    try:
        current = frame
        while current is not None:
            current = current.f_back
            if current is None:
                break

            module = inspect.getmodule(current)
            if module is None:
                continue

            moduleName = module.__name__

            # Skip frames inside this package and the import machinery
            if moduleName.startswith('sdk.logging'):
                continue
            if moduleName.startswith('importlib') or moduleName == '__main__':
                continue

            className = None
            if current.f_locals:
                if 'self' in current.f_locals:
                    className = current.f_locals['self'].__class__.__name__
                elif 'cls' in current.f_locals:
                    className = current.f_locals['cls'].__name__

            hierarchy = moduleName
            if className:
                hierarchy = f"{hierarchy}.{className}"
            return hierarchy or 'unknown'

        return 'unknown'
    finally:
        del frame


class StructuredFormatter(logging.Formatter):
    """Formatter that appends structured fields to the message.
    Format: timestamp - hostname - logger.name - level - message [field1=value1, field2=value2]"""

    def __init__(self, fmt=None, datefmt=None, utc=False):
        super().__init__(fmt, datefmt)
        self.utc = utc

    def formatTime(self, record, datefmt=None):
        if self.utc:
            ct = datetime.fromtimestamp(record.created, tz=tz.utc)
        else:
            ct = datetime.fromtimestamp(record.created)

        if datefmt:
            return ct.strftime(datefmt)
        return f"{ct.strftime('%Y-%m-%d %H:%M:%S')},{int(record.msecs):03d}"

    def format(self, record):
        record.hostname = _hostname

        structuredFields = [f"{key}={value}" for key, value in record.__dict__.items()
                            if key not in _RESERVED and not key.startswith('_')]

        # Work on a copy of msg so other handlers see the original
        originalMsg = record.msg
        if structuredFields:
            record.msg = f"{originalMsg} [{', '.join(structuredFields)}]"
        try:
            return super().format(record)
        finally:
            record.msg = originalMsg


def getLogger(name: Optional[str] = None, separateFile: bool = False) -> logging.Logger:
    """
    Get or create a logger with automatic hierarchy detection.

    Stack inspection happens once per getLogger() call; keep the returned
    logger on the instance or module and reuse it.

    Args:
        name: Logger name (auto-detected from call stack if None)
        separateFile: If True and a logDir is configured, log to '<name>.log'
                      instead of the top-level app file

    Returns:
        logging.Logger whose level methods accept structured **fields
    """
    if not _configured:
        configureLogging()

    if name is None:
        name = _autoDetectName()

    logger = logging.getLogger(name)
    logger.propagate = False

    if not logger.handlers and not hasattr(logger, '_configuredBySdk'):
        logger.setLevel(_config['level'])

        if _config['logDir']:
            appName = name if separateFile else name.split('.')[0]
            logPath = str(Path(_config['logDir']) / f"{appName}.log")

            if logPath not in _fileHandlers:
                fileHandler = logging.handlers.RotatingFileHandler(
                    logPath,
                    maxBytes=_config['maxBytes'],
                    backupCount=_config['backupCount'],
                    encoding='utf-8'
                )
                fileHandler.setLevel(_config['level'])
                fileHandler.setFormatter(StructuredFormatter(
                    '%(asctime)s - %(hostname)s - %(name)s - %(levelname)s - %(message)s',
                    utc=_config['utc']
                ))
                _fileHandlers[logPath] = fileHandler

            logger.addHandler(_fileHandlers[logPath])

        if _config['console']:
            consoleHandler = logging.StreamHandler()
            consoleHandler.setLevel(_config['level'])
            consoleHandler.setFormatter(StructuredFormatter(
                '%(name)s - %(levelname)s - %(message)s',
                utc=_config['utc']
            ))
            logger.addHandler(consoleHandler)

        logger._configuredBySdk = True

    return _wrapLogger(logger)


def _fieldsToExtra(fields: dict) -> dict:
    """Rename structured fields that collide with LogRecord attributes."""
    return {(f"field_{key}" if key in _RESERVED else key): value for key, value in fields.items()}


def _wrapLogger(logger: logging.Logger) -> logging.Logger:
    """
    Replace the level methods so they accept structured fields as **kwargs.

    Allows: log.info("Message", field1=value1)
    Instead of: log.info("Message", extra={'field1': value1})
    """
    if hasattr(logger, '_isWrapped'):
        return logger

    def _make(levelNo):
        def emit(msg, *args, **kwargs):
            if not logger.isEnabledFor(levelNo):
                return
            excInfo = kwargs.pop('exc_info', False)
            logger._log(levelNo, msg, args, exc_info=excInfo,
                        extra=_fieldsToExtra(kwargs) if kwargs else None)
        return emit

    logger.verbose = _make(VERBOSE)
    logger.debug = _make(logging.DEBUG)
    logger.info = _make(logging.INFO)
    logger.warning = _make(logging.WARNING)
    logger.error = _make(logging.ERROR)
    logger.critical = _make(logging.CRITICAL)
    logger._isWrapped = True

    return logger
