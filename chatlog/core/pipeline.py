"""
Chatlog Event Pipeline

Observes the host messaging client and store, classifies what it sees into
log entries, and appends them to the Log Store.

Sources:
- Interposed client calls (sendMessage, updateMessage, deleteMessage):
  classified synchronously right after the original returns
- Conversation map changes (store subscription): diffed through the
  Snapshot Tracker into RECEIVED (first sighting, not own) and READ
  (first read receipt) events

Lifecycle (driven by the MESSAGE_LOGGING setting):
  Disabled -> Enabled: subscribe, prime the tracker with the current map,
                       install interposition on every present slot
  Enabled -> Disabled: unsubscribe, restore originals, clear the tracker
  Re-enabling installs fresh replacements; handles are never reused.

Guarantees:
- Interposed replacements always call the original and return its result;
  classification failures are reported and swallowed
- One malformed message never aborts its siblings in the same batch
- RECEIVED / READ enrichment runs as a task bounded by enrichmentTimeout;
  on failure or timeout the entry is appended without identity fields
- Enrichment already in flight when the pipeline is disabled still
  completes and appends
- Ownership is decided against user.userId read fresh from the store

Property of Uncompromising Sensors LLC.
"""

import asyncio
from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional, Set

from sdk.logging import getLogger
from .contract import (
    CLIENT_SLOTS, SettingIds, UPDATE_TYPE_SAVE, DEFAULT_ENRICHMENT_TIMEOUT_SECONDS, EMPTY_EXPORT,
    settingUpdateEvent
)
from .content import getField, extractMessageContent, getMessageType
from .diagnostics import MessageDebugger
from .entries import LogEntry, LogFilter, LogStats, MessageEventType
from .formatting import formatLogEntry
from .interposition import Interposer, observeCall
from .logStore import LogStore
from .query import QueryError
from .sanitize import sanitizeForLogging
from .snapshotTracker import SnapshotTracker
from .store import StateSlotHolder, selectPath, getCurrentUserId, getConversation, iterMessages


CONVERSATIONS_PATH = ('messaging', 'conversations')
CLIENT_PATH = ('messaging', 'client')

# updateType -> event; anything else is a read
UPDATE_TYPE_EVENTS = {
    UPDATE_TYPE_SAVE: MessageEventType.SAVED,
}

# Positional parameter names of the interposed client calls
CALL_PARAMETERS = {
    'sendMessage': ('conversationId', 'message'),
    'updateMessage': ('conversationId', 'messageId', 'updateType'),
    'deleteMessage': ('conversationId', 'messageId'),
}


def selectConversations(state: Any) -> Any:
    return selectPath(state, CONVERSATIONS_PATH)


def classifyUpdateType(updateType: Any) -> MessageEventType:
    """Map an updateMessage updateType to an event type (unrecognised -> READ)."""
    try:
        return UPDATE_TYPE_EVENTS.get(updateType, MessageEventType.READ)
    except TypeError:
        # Unhashable update types
        return MessageEventType.READ


def bindCallArguments(slotName: str, args: tuple, kwargs: dict) -> Dict[str, Any]:
    """Name the arguments of an interposed call (positional first, then keywords)."""
    names = CALL_PARAMETERS.get(slotName, ())
    bound = {name: None for name in names}
    for name, value in zip(names, args):
        bound[name] = value
    for name in names:
        if name in kwargs:
            bound[name] = kwargs[name]
    return bound


def _iterConversations(conversations: Any):
    if isinstance(conversations, Mapping):
        yield from conversations.items()
    else:
        for conversationId, conversation in conversations:
            yield conversationId, conversation


class EventPipeline:
    """
    Message logging pipeline.

    Collaborators are injected so tests can substitute fakes; the Log Store
    and Snapshot Tracker are owned by this instance.
    """

    def __init__(self, store, settings, logStore: Optional[LogStore] = None,
                 enrichment=None, diagnostics: Optional[MessageDebugger] = None,
                 tracker: Optional[SnapshotTracker] = None,
                 interposer: Optional[Interposer] = None,
                 enrichmentTimeout: float = DEFAULT_ENRICHMENT_TIMEOUT_SECONDS):
        """
        Args:
            store: Host store (getState / setState / subscribe)
            settings: Settings collaborator (getSetting / on / off)
            logStore: Log Store (default: new store sized from settings)
            enrichment: EnrichmentService (None = entries never carry identity)
            diagnostics: MessageDebugger (default: built on settings)
            tracker: Snapshot Tracker (default: new)
            interposer: Interposer (default: new)
            enrichmentTimeout: Seconds to wait for identity before appending without it
        """
        self.log = getLogger()
        self.store = store
        self.settings = settings
        self.logStore = logStore if logStore is not None else LogStore(
            settings.getSetting(SettingIds.MESSAGE_LOGGING_MAX_ENTRIES))
        self.enrichment = enrichment
        self.diagnostics = diagnostics if diagnostics is not None else MessageDebugger(settings)
        self.tracker = tracker if tracker is not None else SnapshotTracker()
        self.interposer = interposer if interposer is not None else Interposer()
        self.enrichmentTimeout = enrichmentTimeout

        self.enabled = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._pending: Set[asyncio.Task] = set()
        self._holders = {slot: StateSlotHolder(store, path) for slot, path in CLIENT_SLOTS.items()}
        self._listeners = [
            (settingUpdateEvent(SettingIds.MESSAGE_LOGGING), self._onToggle),
            (settingUpdateEvent(SettingIds.MESSAGE_LOGGING_DETAILED), self._onToggle),
            (settingUpdateEvent(SettingIds.MESSAGE_LOGGING_MAX_ENTRIES), self.setMaxEntries),
        ]
        self._started = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self):
        """Register settings listeners and apply the current settings."""
        if not self._started:
            for event, callback in self._listeners:
                self.settings.on(event, callback)
            self._started = True

        self.logStore.setCapacity(self.settings.getSetting(SettingIds.MESSAGE_LOGGING_MAX_ENTRIES))
        self.load()
        self.diagnostics.info("Message Logging module setup complete",
                              enabled=self.settings.getSetting(SettingIds.MESSAGE_LOGGING),
                              detailed=self.settings.getSetting(SettingIds.MESSAGE_LOGGING_DETAILED),
                              maxEntries=self.logStore.capacity)

    def stop(self):
        """Unregister settings listeners and tear instrumentation down."""
        if self._started:
            for event, callback in self._listeners:
                self.settings.off(event, callback)
            self._started = False
        self._disable()

    def load(self):
        """Reconcile instrumentation with the MESSAGE_LOGGING setting."""
        enabled = self.settings.getSetting(SettingIds.MESSAGE_LOGGING) is True
        self.diagnostics.debug("Loading message logging module", enabled=enabled)

        if not enabled:
            # Teardown does not need the client
            self._disable()
            return

        if not isinstance(selectPath(self.store.getState(), CLIENT_PATH), Mapping):
            self.diagnostics.warn("Message logging load called but messaging client not available")
            return

        self._enable()

    def _onToggle(self, value):
        self.load()

    def _enable(self):
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(selectConversations, self._handleConversationChanges)
            # Messages already on screen are baseline, not arrivals
            self._scan(selectConversations(self.store.getState()), emit=False)

        for slotName, holder in self._holders.items():
            if self.interposer.isInstalled(holder, slotName):
                continue
            handle = self.interposer.install(holder, slotName, self._makeReplacementFactory(slotName))
            if handle is not None:
                self.diagnostics.debug(f"Proxied {slotName} function")

        if not self.enabled:
            self.enabled = True
            self.diagnostics.info("Message logging enabled")

    def _disable(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        restored = self.interposer.restoreAll()
        self.tracker.clear()

        if self.enabled:
            self.enabled = False
            # Diagnostics are gated off once MESSAGE_LOGGING is false
            self.log.info("Message logging disabled", restored=restored, pending=len(self._pending))

    @property
    def pendingCount(self) -> int:
        return len(self._pending)

    async def drain(self):
        """Wait until every scheduled enrichment has appended (or failed)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # Interposed calls
    # =========================================================================

    def _makeReplacementFactory(self, slotName: str):
        classify = {
            'sendMessage': self._classifySend,
            'updateMessage': self._classifyUpdate,
            'deleteMessage': self._classifyDelete,
        }[slotName]

        def before(args, kwargs):
            self.diagnostics.logAPICall(slotName, args)

        def after(args, kwargs, result):
            timer = self.diagnostics.createTimer(slotName)
            call = bindCallArguments(slotName, args, kwargs)
            entry = self._append(classify(call))
            timer.end(conversationId=entry.conversationId, eventType=entry.eventType.value)

        def onError(stage, error, args):
            self.diagnostics.error(f"Error logging {slotName} call", stage=stage,
                                   args=args, error=repr(error))

        def makeReplacement(original):
            return observeCall(original, after=after, before=before, onError=onError)

        return makeReplacement

    def _requireConversationId(self, call: Dict[str, Any]) -> str:
        conversationId = call.get('conversationId')
        if conversationId is None or conversationId == '':
            raise ValueError("call has no conversationId")
        return str(conversationId)

    def _classifySend(self, call: Dict[str, Any]) -> LogEntry:
        conversationId = self._requireConversationId(call)
        message = call.get('message')
        messageId = getField(message, 'messageId')
        return LogEntry(
            eventType=MessageEventType.SENT,
            conversationId=conversationId,
            conversationTitle=self._conversationTitle(conversationId),
            messageId=str(messageId) if messageId is not None else None,
            content=extractMessageContent(message),
            messageType=getMessageType(message),
            metadata={'message': sanitizeForLogging(message)},
        )

    def _classifyUpdate(self, call: Dict[str, Any]) -> LogEntry:
        conversationId = self._requireConversationId(call)
        updateType = call.get('updateType')
        eventType = classifyUpdateType(updateType)
        if eventType is MessageEventType.READ and updateType not in (None, 0):
            self.diagnostics.debug("Unrecognised updateType classified as read", updateType=updateType)

        messageId = call.get('messageId')
        return LogEntry(
            eventType=eventType,
            conversationId=conversationId,
            conversationTitle=self._conversationTitle(conversationId),
            messageId=str(messageId) if messageId is not None else None,
            metadata={'updateType': sanitizeForLogging(updateType)},
        )

    def _classifyDelete(self, call: Dict[str, Any]) -> LogEntry:
        conversationId = self._requireConversationId(call)
        messageId = call.get('messageId')
        return LogEntry(
            eventType=MessageEventType.DELETED,
            conversationId=conversationId,
            conversationTitle=self._conversationTitle(conversationId),
            messageId=str(messageId) if messageId is not None else None,
        )

    # =========================================================================
    # Store observation
    # =========================================================================

    def _handleConversationChanges(self, conversations):
        self._scan(conversations, emit=True)

    def _scan(self, conversations: Any, emit: bool):
        """Observe every message in the conversation map; sweep the tracker after a clean pass."""
        if not conversations:
            return

        liveKeys = set()
        complete = True

        try:
            pairs = list(_iterConversations(conversations))
        except Exception as e:
            self.diagnostics.error("Error reading conversation map", error=repr(e))
            return

        for conversationId, conversation in pairs:
            try:
                messages = list(iterMessages(conversation))
            except Exception as e:
                complete = False
                self.diagnostics.error("Error reading conversation messages",
                                       conversationId=conversationId, error=repr(e))
                continue

            for messageId, message in messages:
                # Counted live before classification, so a malformed message never blocks the sweep
                liveKeys.add(messageId)
                try:
                    self._observeMessage(str(conversationId), messageId, message, emit)
                except Exception as e:
                    self.diagnostics.error("Error classifying message", conversationId=conversationId,
                                           messageId=messageId, error=repr(e))

        # An unreadable conversation hides its ids; sweeping would evict live snapshots
        if complete:
            evicted = self.tracker.sweep(liveKeys)
            if evicted:
                self.diagnostics.debug("Evicted stale message snapshots", evicted=evicted)

    def _isOwnMessage(self, message: Any) -> bool:
        currentUserId = getCurrentUserId(self.store)
        return currentUserId is not None and getField(message, 'senderId') == currentUserId

    def _observeMessage(self, conversationId: str, messageId: Any, message: Any, emit: bool):
        transition = self.tracker.observe(messageId, message, isOwn=self._isOwnMessage(message))
        if not emit or not transition.changed:
            return

        if transition.isNew:
            senderId = getField(message, 'senderId')
            entry = LogEntry(
                eventType=MessageEventType.RECEIVED,
                conversationId=conversationId,
                conversationTitle=self._conversationTitle(conversationId),
                messageId=str(messageId),
                userId=senderId,
                content=extractMessageContent(message),
                messageType=getMessageType(message),
                metadata={'message': sanitizeForLogging(message)},
            )
            self._schedule(entry, senderId)

        if transition.readReceiptAdded:
            entry = LogEntry(
                eventType=MessageEventType.READ,
                conversationId=conversationId,
                conversationTitle=self._conversationTitle(conversationId),
                messageId=str(messageId),
                userId=transition.newReader,
            )
            self._schedule(entry, transition.newReader)

    def _conversationTitle(self, conversationId: str) -> Optional[str]:
        try:
            conversation = getConversation(self.store, conversationId)
            title = getField(getField(conversation, 'conversation'), 'title')
            return str(title) if title else None
        except Exception:
            return None

    # =========================================================================
    # Enrichment and append
    # =========================================================================

    def _schedule(self, entry: LogEntry, userId: Optional[str]):
        """Append now when there is nothing to await, else enrich in a task."""
        if self.enrichment is None or not userId:
            self._append(entry)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.diagnostics.debug("No running event loop, appending without enrichment",
                                   messageId=entry.messageId)
            self._append(entry)
            return

        task = loop.create_task(self._enrichAndAppend(entry, userId))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _enrichAndAppend(self, entry: LogEntry, userId: str):
        timer = self.diagnostics.createTimer(f"enrich{entry.eventType.name.title()}")
        identity: Dict[str, Any] = {}

        try:
            identity = await asyncio.wait_for(self.enrichment.resolve(userId), timeout=self.enrichmentTimeout)
        except asyncio.TimeoutError:
            self.diagnostics.error("User info lookup timed out", userId=userId,
                                   timeoutSeconds=self.enrichmentTimeout)
        except Exception as e:
            self.diagnostics.error("Error getting user info", userId=userId, error=repr(e))

        try:
            if identity:
                entry = entry.withIdentity(identity.get('username'), identity.get('displayName'))
            self._append(entry)
        except Exception as e:
            self.diagnostics.error(f"Error logging {entry.eventType.value}", conversationId=entry.conversationId,
                                   messageId=entry.messageId, error=repr(e))

        timer.end(conversationId=entry.conversationId, messageId=entry.messageId, userId=userId)

    def _append(self, entry: LogEntry) -> LogEntry:
        stored = self.logStore.append(entry)
        self.diagnostics.logMessageEvent(stored.eventType.value, stored.toDict())
        if self.settings.getSetting(SettingIds.MESSAGE_LOGGING_DETAILED):
            self.diagnostics.info(formatLogEntry(stored), messageId=stored.messageId,
                                  content=(stored.content or 'No content')[:100])
        return stored

    # =========================================================================
    # Public API
    # =========================================================================

    def getLogs(self, conversationId: Optional[str] = None, limit: Optional[int] = None):
        """Entries newest first, optionally for one conversation and capped to the latest `limit`. [] on a bad limit."""
        try:
            return self.logStore.query(LogFilter(conversationId=conversationId or None, limit=limit),
                                       newestFirst=True)
        except QueryError as e:
            self.diagnostics.error("Error getting message logs", error=str(e))
            return []

    def exportLogs(self) -> str:
        return self.logStore.export()

    def exportFilteredLogs(self, logFilter) -> str:
        """Export entries matching a LogFilter or a filter dict. '[]' on any error."""
        try:
            if not isinstance(logFilter, LogFilter):
                logFilter = LogFilter.fromDict(logFilter)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            self.diagnostics.error("Invalid export filter", error=repr(e))
            return EMPTY_EXPORT
        return self.logStore.export(logFilter)

    def clearLogs(self) -> int:
        return self.logStore.clear()

    def getStats(self, logFilter: Optional[LogFilter] = None) -> LogStats:
        """Stats over the (filtered) log. Empty stats on a bad filter."""
        try:
            return self.logStore.stats(logFilter)
        except QueryError as e:
            self.diagnostics.error("Error getting message log stats", error=str(e))
            return LogStats()

    def searchLogs(self, text: str, logFilter: Optional[LogFilter] = None):
        try:
            return self.logStore.search(text, logFilter)
        except QueryError as e:
            self.diagnostics.error("Error searching logs", query=text, error=str(e))
            return []

    def recentLogs(self, hours: float = 24):
        try:
            return self.logStore.recent(hours)
        except (QueryError, TypeError, ValueError) as e:
            self.diagnostics.error("Error getting recent logs", hours=hours, error=str(e))
            return []

    def setMaxEntries(self, maxEntries) -> int:
        capacity = self.logStore.setCapacity(maxEntries)
        self.diagnostics.debug("Max log entries updated", requested=maxEntries, capacity=capacity)
        return capacity
