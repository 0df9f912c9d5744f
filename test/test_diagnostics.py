"""
Diagnostics facade tests

Covers gating by MESSAGE_LOGGING / MESSAGE_LOGGING_DETAILED, sink fallback,
timers, the rolling performance window and the debug dump.
"""

import io
import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from chatlog.core.contract import SettingIds
from chatlog.core.diagnostics import MessageDebugger, MessageDebugLevel
from chatlog.core.settings import Settings


class RecordingSink:
    """Stand-in structured logger capturing (level, message, fields)"""

    def __init__(self):
        self.records = []

    def _record(self, level):
        def emit(msg, **fields):
            self.records.append((level, msg, fields))
        return emit

    def __getattr__(self, name):
        if name in ('error', 'warning', 'info', 'debug', 'verbose'):
            return self._record(name)
        raise AttributeError(name)

    def levels(self):
        return [record[0] for record in self.records]


class BrokenSink:
    def __getattr__(self, name):
        def emit(msg, **fields):
            raise RuntimeError("sink down")
        return emit


class BrokenStream:
    def write(self, text):
        raise OSError("stderr closed")


@pytest.fixture
def settings():
    return Settings({SettingIds.MESSAGE_LOGGING: True})


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def debugger(settings, sink):
    return MessageDebugger(settings, sink=sink)


class TestGating:

    def test_nothing_emitted_when_disabled(self, sink):
        debugger = MessageDebugger(Settings(), sink=sink)
        debugger.error("boom")
        debugger.info("hello")
        assert sink.records == []
        assert debugger.dumpDebugInfo() is None

    def test_default_ceiling_is_info(self, debugger, sink):
        debugger.error("e")
        debugger.warn("w")
        debugger.info("i")
        debugger.debug("d")
        debugger.verbose("v")
        assert sink.levels() == ['error', 'warning', 'info']
        assert debugger.currentLevel == MessageDebugLevel.INFO

    def test_detailed_raises_ceiling(self, settings, debugger, sink):
        settings.setSetting(SettingIds.MESSAGE_LOGGING_DETAILED, True)
        debugger.debug("d")
        debugger.verbose("v")
        assert sink.levels() == ['debug', 'verbose']
        assert debugger.currentLevel == MessageDebugLevel.VERBOSE

    def test_prefix_and_sanitized_fields(self, debugger, sink):
        debugger.info("hello", payload={'blob': b'abc'})
        level, message, fields = sink.records[0]
        assert message == '[MessageLog][INFO] hello'
        assert fields == {'payload': {'blob': '[3 bytes]'}}


class TestFallback:

    def test_failing_sink_falls_back(self, settings):
        fallback = io.StringIO()
        debugger = MessageDebugger(settings, sink=BrokenSink(), fallback=fallback)

        debugger.error("still reported", code=7)

        output = fallback.getvalue()
        assert 'still reported' in output
        assert 'sink down' in output
        assert debugger.messagesLogged == 1

    def test_failing_fallback_is_swallowed(self, settings):
        debugger = MessageDebugger(settings, sink=BrokenSink(), fallback=BrokenStream())
        debugger.warn("nowhere to go")


class TestTimersAndMetrics:

    def test_timer_records_duration(self, debugger):
        timer = debugger.createTimer('op')
        elapsed = timer.end(conversationId='c1')

        assert elapsed >= 0
        assert timer.durationMs == elapsed
        metrics = debugger.getMetrics()
        assert metrics['timedOperations'] == 1
        assert metrics['performanceMetrics']['sampleCount'] == 1

    def test_slow_operation_is_warning(self, debugger, sink):
        debugger.logPerformance('lookup', 150.0)
        assert sink.records[-1][0] == 'warning'
        assert 'Slow operation detected: lookup' in sink.records[-1][1]

    def test_fast_operation_is_verbose(self, settings, debugger, sink):
        debugger.logPerformance('lookup', 5.0)
        assert sink.records == []

        settings.setSetting(SettingIds.MESSAGE_LOGGING_DETAILED, True)
        debugger.logPerformance('lookup', 5.0)
        assert sink.records[-1][0] == 'verbose'

    def test_rolling_window(self, debugger):
        for value in range(150):
            debugger.recordDuration(float(value))

        perf = debugger.getMetrics()['performanceMetrics']
        assert perf['sampleCount'] == 100
        assert perf['minLogTime'] == 50.0
        assert perf['maxLogTime'] == 149.0
        assert perf['averageLogTime'] == pytest.approx(99.5)
        assert debugger.timedOperations == 150

    def test_reset_metrics(self, debugger):
        debugger.recordDuration(3.0)
        debugger.error("x")
        debugger.resetMetrics()

        metrics = debugger.getMetrics()
        assert metrics['errorsEncountered'] == 0
        assert metrics['performanceMetrics']['sampleCount'] == 0
        # resetMetrics reports itself once
        assert metrics['messagesLogged'] == 1


class TestStructuredHelpers:

    def test_api_call_error_counts(self, debugger, sink):
        debugger.logAPICall('sendMessage', ('c1',), error=RuntimeError('x'))
        assert sink.levels() == ['error']
        assert debugger.errorsEncountered == 1

    def test_api_call_success_is_verbose_only(self, settings, debugger, sink):
        debugger.logAPICall('sendMessage', ('c1',), result='ok')
        assert sink.records == []

        settings.setSetting(SettingIds.MESSAGE_LOGGING_DETAILED, True)
        debugger.logAPICall('sendMessage', ('c1',), result='ok')
        assert sink.records[-1][1] == '[MessageLog][VERBOSE] API Call: sendMessage'

    def test_message_event_and_state_change_need_debug(self, settings, debugger, sink):
        debugger.logMessageEvent('MESSAGE_SENT', {'conversationId': 'c1'})
        debugger.logStateChange({}, {'a': 1}, 'conversations')
        assert sink.records == []

        settings.setSetting(SettingIds.MESSAGE_LOGGING_DETAILED, True)
        debugger.logMessageEvent('MESSAGE_SENT', {'conversationId': 'c1'})
        debugger.logStateChange({}, {'a': 1}, 'conversations')
        assert [r[1] for r in sink.records] == [
            '[MessageLog][DEBUG] Message Event: MESSAGE_SENT',
            '[MessageLog][DEBUG] State Change',
        ]

    def test_dump_debug_info(self, debugger, sink):
        info = debugger.dumpDebugInfo()
        assert info['currentLevel'] == 'INFO'
        assert info['settings'] == {'messageLogging': True, 'detailedLogging': False, 'maxEntries': 1000}
        assert sink.records[-1][1] == '[MessageLog][INFO] Debug Info'
