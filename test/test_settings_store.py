"""
Settings collaborator and observable store tests
"""

import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from chatlog.core.contract import SETTING_DEFAULTS, SettingIds, settingUpdateEvent
from chatlog.core.settings import Settings
from chatlog.core.store import (
    ObservableStore, StateSlotHolder, getConversation, getCurrentUserId, iterMessages, selectPath
)


class TestSettings:

    def test_defaults(self):
        settings = Settings()
        assert settings.getSetting(SettingIds.MESSAGE_LOGGING) is False
        assert settings.getSetting(SettingIds.MESSAGE_LOGGING_MAX_ENTRIES) == 1000
        assert settings.snapshot() == SETTING_DEFAULTS

    def test_listener_fires_on_change_only(self):
        settings = Settings()
        seen = []
        settings.on(settingUpdateEvent(SettingIds.MESSAGE_LOGGING), seen.append)

        settings.setSetting(SettingIds.MESSAGE_LOGGING, True)
        settings.setSetting(SettingIds.MESSAGE_LOGGING, True)
        settings.setSetting(SettingIds.MESSAGE_LOGGING_DETAILED, True)

        assert seen == [True]

    def test_off_and_failing_listener(self):
        settings = Settings()
        seen = []

        def broken(value):
            raise RuntimeError("listener bug")

        event = settingUpdateEvent(SettingIds.MESSAGE_LOGGING_MAX_ENTRIES)
        settings.on(event, broken)
        settings.on(event, seen.append)
        settings.setSetting(SettingIds.MESSAGE_LOGGING_MAX_ENTRIES, 200)
        assert seen == [200]

        settings.off(event, seen.append)
        settings.off(event, seen.append)
        settings.setSetting(SettingIds.MESSAGE_LOGGING_MAX_ENTRIES, 300)
        assert seen == [200]
        assert settings.getSetting(SettingIds.MESSAGE_LOGGING_MAX_ENTRIES) == 300


class TestObservableStore:

    def test_notifies_on_identity_change(self):
        conversations = {'c1': {}}
        store = ObservableStore({'messaging': {'conversations': conversations}})
        seen = []
        store.subscribe(lambda s: selectPath(s, ('messaging', 'conversations')), seen.append)

        store.setState({'user': {'userId': 'u1'}})
        assert seen == []

        store.setState({'messaging': {'conversations': conversations}})
        assert seen == []

        replacement = {'c1': {}, 'c2': {}}
        store.setState({'messaging': {'conversations': replacement}})
        assert seen == [replacement]

    def test_unsubscribe_is_idempotent(self):
        store = ObservableStore()
        seen = []
        unsubscribe = store.subscribe(lambda s: s.get('x'), seen.append)
        assert store.subscriberCount == 1

        unsubscribe()
        unsubscribe()
        store.setState({'x': 1})

        assert store.subscriberCount == 0
        assert seen == []

    def test_subscriber_errors_are_isolated(self):
        store = ObservableStore()
        seen = []

        def broken(value):
            raise RuntimeError("subscriber bug")

        store.subscribe(lambda s: s.get('x'), broken)
        store.subscribe(lambda s: s['missing'], broken)
        store.subscribe(lambda s: s.get('x'), seen.append)
        store.setState({'x': 1})

        assert seen == [1]


class TestStateSlotHolder:

    def test_write_copies_parents(self):
        original = lambda: 'original'
        client = {'sendMessage': original}
        messaging = {'client': client, 'conversations': {}}
        store = ObservableStore({'messaging': messaging})
        holder = StateSlotHolder(store, ('messaging', 'client'))

        holder['sendMessage'] = 'replacement'

        state = store.getState()
        assert state['messaging']['client']['sendMessage'] == 'replacement'
        assert state['messaging']['conversations'] is messaging['conversations']
        assert client['sendMessage'] is original
        assert state['messaging'] is not messaging

    def test_read_and_delete(self):
        store = ObservableStore({'messaging': {'updateMessage': 1, 'other': 2}})
        holder = StateSlotHolder(store, ('messaging',))

        assert holder['updateMessage'] == 1
        assert set(holder) == {'updateMessage', 'other'}

        del holder['updateMessage']
        assert 'updateMessage' not in store.getState()['messaging']
        assert len(holder) == 1

    def test_available(self):
        store = ObservableStore()
        holder = StateSlotHolder(store, ('messaging', 'client'))
        assert not holder.available
        assert holder.get('sendMessage') is None

        store.setState({'messaging': {'client': {}}})
        assert holder.available

    def test_empty_path_rejected(self):
        with pytest.raises(ValueError):
            StateSlotHolder(ObservableStore(), ())


class TestStateReaders:

    def test_select_path(self):
        state = {'a': {'b': {'c': 3}}}
        assert selectPath(state, ('a', 'b', 'c')) == 3
        assert selectPath(state, ('a', 'x', 'c')) is None

    def test_current_user_is_read_fresh(self):
        store = ObservableStore({'user': {'userId': 'u1'}})
        assert getCurrentUserId(store) == 'u1'
        store.setState({'user': {'userId': 'u2'}})
        assert getCurrentUserId(store) == 'u2'
        store.setState({'user': None})
        assert getCurrentUserId(store) is None

    def test_get_conversation(self):
        store = ObservableStore({'messaging': {'conversations': {'c1': {'conversation': {'title': 'T'}}}}})
        assert getConversation(store, 'c1') == {'conversation': {'title': 'T'}}
        assert getConversation(store, 'c2') is None

    def test_iter_messages_mapping_and_pairs(self):
        assert list(iterMessages({'messages': {'m1': 1, 'm2': 2}})) == [('m1', 1), ('m2', 2)]
        assert list(iterMessages({'messages': [('m1', 1)]})) == [('m1', 1)]
        assert list(iterMessages({'messages': None})) == []
        assert list(iterMessages(None)) == []
