"""
SDK Logging - hierarchical structured logger with automatic name detection.

API:
    from sdk.logging import getLogger

    class EventPipeline:
        def __init__(self):
            self.log = getLogger()  # Auto: 'chatlog.core.pipeline.EventPipeline'

        def load(self):
            self.log.info("Loading", enabled=True)

    # Global configuration (optional, once at app startup)
    from sdk.logging import configureLogging
    configureLogging(logDir='./logs', level='DEBUG')
"""

from .logger import getLogger, configureLogging, StructuredFormatter, VERBOSE

__all__ = [
    'getLogger',
    'configureLogging',
    'StructuredFormatter',
    'VERBOSE'
]
