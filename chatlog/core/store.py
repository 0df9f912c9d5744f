"""
Subscribable state store and slot views.

ObservableStore is the in-process stand-in for the host client's store:
getState(), setState(patch) with a shallow top-level merge, and
subscribe(selector, callback) -> unsubscribe. A subscriber fires only when
its selected value changes by identity, so hosts are expected to replace
(not mutate) the containers they change.

StateSlotHolder exposes one nested dict of the state (e.g. messaging.client)
as a mutable mapping; writes copy each parent level and go through
setState(), which is how the interposition layer swaps client callables.

State shape read by the pipeline:
    {
        "user": {"userId": "u-self"},
        "messaging": {
            "updateMessage": <callable>,
            "client": {"sendMessage": <callable>, "deleteMessage": <callable>},
            "conversations": {
                "<conversationId>": {
                    "conversation": {"title": "..."},
                    "messages": {"<messageId>": {...}}   # or [(id, message), ...]
                }
            }
        }
    }
"""

from collections.abc import Mapping, MutableMapping
from typing import Any, Callable, Dict, List, Optional, Tuple

from sdk.logging import getLogger
from .content import getField


_UNSET = object()


class _Subscription:
    __slots__ = ('selector', 'callback', 'lastValue', 'active')

    def __init__(self, selector, callback, lastValue):
        self.selector = selector
        self.callback = callback
        self.lastValue = lastValue
        self.active = True


class ObservableStore:
    """Minimal selector-subscription store"""

    def __init__(self, initialState: Optional[Dict[str, Any]] = None):
        self.log = getLogger()
        self._state: Dict[str, Any] = dict(initialState or {})
        self._subscriptions: List[_Subscription] = []

    def getState(self) -> Dict[str, Any]:
        return self._state

    def setState(self, patch: Dict[str, Any]):
        """Merge patch into the top level and notify subscribers whose selection changed."""
        self._state = {**self._state, **patch}

        for sub in list(self._subscriptions):
            if not sub.active:
                continue
            try:
                selected = sub.selector(self._state)
            except Exception as e:
                self.log.warning(f"Store selector failed: {e!r}")
                continue
            if selected is sub.lastValue:
                continue
            sub.lastValue = selected
            try:
                sub.callback(selected)
            except Exception as e:
                self.log.error(f"Store subscriber failed: {e!r}", exc_info=True)

    def subscribe(self, selector: Callable[[Dict[str, Any]], Any],
                  callback: Callable[[Any], Any]) -> Callable[[], None]:
        """
        Register callback for changes of selector(state).

        Returns:
            Unsubscribe function (idempotent)
        """
        try:
            initial = selector(self._state)
        except Exception:
            initial = _UNSET
        sub = _Subscription(selector, callback, initial)
        self._subscriptions.append(sub)

        def unsubscribe():
            if sub.active:
                sub.active = False
                self._subscriptions.remove(sub)

        return unsubscribe

    @property
    def subscriberCount(self) -> int:
        return len(self._subscriptions)


def selectPath(state: Any, path: Tuple[str, ...]) -> Any:
    """Walk a key path through nested mappings/objects; None when any level is absent."""
    current = state
    for key in path:
        current = getField(current, key)
        if current is None:
            return None
    return current


class StateSlotHolder(MutableMapping):
    """
    Mutable mapping view of the dict at `path` inside a store's state.

    Reads always see the latest state. Writes rebuild every level of the
    path with the new value and publish it with one setState() call.
    """

    def __init__(self, store, path: Tuple[str, ...]):
        if not path:
            raise ValueError("StateSlotHolder path must not be empty")
        self.store = store
        self.path = tuple(path)

    def _target(self) -> Mapping:
        target = selectPath(self.store.getState(), self.path)
        return target if isinstance(target, Mapping) else {}

    @property
    def available(self) -> bool:
        return isinstance(selectPath(self.store.getState(), self.path), Mapping)

    def __getitem__(self, key):
        return self._target()[key]

    def __iter__(self):
        return iter(self._target())

    def __len__(self):
        return len(self._target())

    def _publish(self, updated: Dict[str, Any]):
        state = self.store.getState()
        parents = []
        current = state
        for key in self.path[:-1]:
            current = getField(current, key) or {}
            parents.append(current)

        value = updated
        for key, parent in zip(reversed(self.path[1:]), reversed(parents)):
            value = {**parent, key: value}

        self.store.setState({self.path[0]: value})

    def __setitem__(self, key, value):
        self._publish({**self._target(), key: value})

    def __delitem__(self, key):
        target = dict(self._target())
        del target[key]
        self._publish(target)


def getCurrentUserId(store) -> Optional[str]:
    """Session user id, read fresh from the store on every call."""
    return selectPath(store.getState(), ('user', 'userId'))


def getConversation(store, conversationId: str) -> Any:
    conversations = selectPath(store.getState(), ('messaging', 'conversations'))
    return getField(conversations, conversationId)


def iterMessages(conversation: Any):
    """Yield (messageId, message) pairs from a mapping or a sequence of pairs."""
    messages = getField(conversation, 'messages')
    if not messages:
        return
    if isinstance(messages, Mapping):
        yield from messages.items()
    else:
        for messageId, message in messages:
            yield messageId, message
