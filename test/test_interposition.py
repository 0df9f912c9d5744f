"""
Interposition and Snapshot Tracker tests

Interposition:
- install is idempotent; restore returns the true original
- Missing / non-callable slots are left untouched
- Externally reassigned slots are re-captured
- observeCall forwards arguments and results, isolates observer failures

Snapshot Tracker:
- isNew on first sighting (suppressed for own items)
- exactly one readReceiptAdded per message
- sweep / clear bound the table

Property of Uncompromising Sensors LLC.
"""

import os
import sys
import pytest
from types import SimpleNamespace

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from chatlog.core.interposition import Interposer, observeCall
from chatlog.core.snapshotTracker import SnapshotTracker, NO_TRANSITION
from chatlog.core.store import ObservableStore, StateSlotHolder


def original(a, b=0):
    return a + b


def passthrough(fn):
    return observeCall(fn)


# ============================================================================
# Interposer
# ============================================================================

class TestInterposer:

    @pytest.fixture
    def interposer(self):
        return Interposer()

    def test_install_replaces_slot(self, interposer):
        holder = {'add': original}
        handle = interposer.install(holder, 'add', passthrough)

        assert handle is not None
        assert holder['add'] is handle.replacement
        assert holder['add'] is not original
        assert holder['add'](2, b=3) == 5
        assert interposer.isInstalled(holder, 'add')

    def test_double_install_leaves_one_wrap(self, interposer):
        holder = {'add': original}
        first = interposer.install(holder, 'add', passthrough)
        second = interposer.install(holder, 'add', passthrough)

        assert first is second
        assert len(interposer) == 1
        assert holder['add'].__interposed__ is original

        assert interposer.restore(holder, 'add') is True
        assert holder['add'] is original

    def test_attribute_holder(self, interposer):
        holder = SimpleNamespace(add=original)
        interposer.install(holder, 'add', passthrough)
        assert holder.add is not original

        interposer.restore(holder, 'add')
        assert holder.add is original

    def test_missing_slot_is_noop(self, interposer):
        holder = {}
        assert interposer.install(holder, 'add', passthrough) is None
        assert holder == {}
        assert len(interposer) == 0

    def test_non_callable_slot_is_noop(self, interposer):
        holder = {'add': 42}
        assert interposer.install(holder, 'add', passthrough) is None
        assert holder['add'] == 42

    def test_restore_without_install_is_noop(self, interposer):
        holder = {'add': original}
        assert interposer.restore(holder, 'add') is False
        assert holder['add'] is original

    def test_externally_reassigned_slot_is_recaptured(self, interposer):
        def other(a, b=0):
            return a * b

        holder = {'add': original}
        interposer.install(holder, 'add', passthrough)
        holder['add'] = other

        assert not interposer.isInstalled(holder, 'add')
        handle = interposer.install(holder, 'add', passthrough)

        assert handle.original is other
        interposer.restore(holder, 'add')
        assert holder['add'] is other

    def test_restore_leaves_reassigned_slot_alone(self, interposer):
        def other(a, b=0):
            return a * b

        holder = {'add': original}
        interposer.install(holder, 'add', passthrough)
        holder['add'] = other

        assert interposer.restore(holder, 'add') is False
        assert holder['add'] is other
        assert len(interposer) == 0

    def test_restore_does_not_recreate_vanished_holder(self, interposer):
        store = ObservableStore({'messaging': {'client': {'send': original}}})
        holder = StateSlotHolder(store, ('messaging', 'client'))
        interposer.install(holder, 'send', passthrough)

        store.setState({'messaging': {}})

        assert interposer.restore(holder, 'send') is False
        assert store.getState()['messaging'] == {}

    def test_restore_all(self, interposer):
        first = {'add': original}
        second = SimpleNamespace(add=original)
        interposer.install(first, 'add', passthrough)
        interposer.install(second, 'add', passthrough)

        assert interposer.restoreAll() == 2
        assert first['add'] is original
        assert second.add is original
        assert len(interposer) == 0

    def test_reinstall_after_restore_is_fresh(self, interposer):
        holder = {'add': original}
        first = interposer.install(holder, 'add', passthrough).replacement
        interposer.restore(holder, 'add')
        second = interposer.install(holder, 'add', passthrough).replacement
        assert first is not second

    def test_store_slot_holder(self, interposer):
        """Writes go through setState and leave the previous state untouched"""
        store = ObservableStore({'messaging': {'client': {'send': original}, 'other': 1}})
        before = store.getState()
        holder = StateSlotHolder(store, ('messaging', 'client'))

        interposer.install(holder, 'send', passthrough)

        assert store.getState()['messaging']['client']['send'] is not original
        assert store.getState()['messaging']['other'] == 1
        assert before['messaging']['client']['send'] is original

        interposer.restore(holder, 'send')
        assert store.getState()['messaging']['client']['send'] is original


# ============================================================================
# observeCall
# ============================================================================

class TestObserveCall:

    def test_forwards_arguments_and_result(self):
        seen = []
        replacement = observeCall(original,
                                  before=lambda args, kwargs: seen.append(('before', args, kwargs)),
                                  after=lambda args, kwargs, result: seen.append(('after', result)))

        assert replacement(1, b=2) == 3
        assert seen == [('before', (1,), {'b': 2}), ('after', 3)]
        assert replacement.__name__ == 'original'

    def test_observer_failure_never_reaches_caller(self):
        errors = []

        def explode(*_):
            raise RuntimeError("observer broke")

        replacement = observeCall(original, before=explode, after=explode,
                                  onError=lambda stage, e, args: errors.append(stage))

        assert replacement(4, b=1) == 5
        assert errors == ['before', 'after']

    def test_failing_error_reporter_is_contained(self):
        def explode(*_):
            raise RuntimeError("broken")

        replacement = observeCall(original, after=explode, onError=explode)
        assert replacement(1) == 1

    def test_original_exception_propagates(self):
        after = []

        def failing():
            raise ValueError("host failure")

        replacement = observeCall(failing, after=lambda *a: after.append(a))
        with pytest.raises(ValueError):
            replacement()
        assert after == []


# ============================================================================
# Snapshot Tracker
# ============================================================================

class TestSnapshotTracker:

    @pytest.fixture
    def tracker(self):
        return SnapshotTracker()

    def test_first_observation_is_new(self, tracker):
        transition = tracker.observe('m1', {'readBy': []})
        assert transition.isNew
        assert not transition.readReceiptAdded
        assert 'm1' in tracker

    def test_repeat_observation_is_quiet(self, tracker):
        message = {'readBy': [], 'text': 'hi'}
        tracker.observe('m1', message)
        assert tracker.observe('m1', message) == NO_TRANSITION
        assert not tracker.observe('m1', {'readBy': [], 'text': 'edited'}).changed

    def test_read_receipt_fires_once(self, tracker):
        tracker.observe('m1', {'readBy': []})

        transition = tracker.observe('m1', {'readBy': ['u1']})
        assert transition.readReceiptAdded
        assert transition.newReader == 'u1'
        assert not transition.isNew

        assert tracker.observe('m1', {'readBy': ['u1', 'u2']}) == NO_TRANSITION

    def test_in_place_mutation_detected(self, tracker):
        message = {'readBy': []}
        tracker.observe('m1', message)
        message['readBy'].append('u9')

        transition = tracker.observe('m1', message)
        assert transition.readReceiptAdded
        assert transition.newReader == 'u9'

    def test_already_read_on_first_sighting(self, tracker):
        transition = tracker.observe('m1', {'readBy': ['u1']})
        assert transition.isNew
        assert not transition.readReceiptAdded
        assert not tracker.observe('m1', {'readBy': ['u1']}).changed

    def test_own_items_are_not_new(self, tracker):
        assert not tracker.observe('m1', {'readBy': []}, isOwn=True).isNew
        assert tracker.observe('m1', {'readBy': ['u2']}, isOwn=True).readReceiptAdded

    def test_attribute_objects(self, tracker):
        message = SimpleNamespace(readBy=[])
        tracker.observe('m1', message)
        message.readBy = ['u1']
        assert tracker.observe('m1', message).newReader == 'u1'

    def test_sweep_and_clear(self, tracker):
        for key in ('m1', 'm2', 'm3'):
            tracker.observe(key, {'readBy': []})

        assert tracker.sweep(['m2']) == 2
        assert len(tracker) == 1
        assert 'm1' not in tracker

        tracker.clear()
        assert len(tracker) == 0
        assert tracker.observe('m2', {'readBy': []}).isNew
