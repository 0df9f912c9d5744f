"""
One-line human-readable rendering of log entries for console output.
"""

from datetime import datetime, timezone

from .entries import LogEntry, MessageEventType


_TEMPLATES = {
    MessageEventType.SENT: "You sent a message in {conversation}",
    MessageEventType.RECEIVED: "{user} sent a message in {conversation}",
    MessageEventType.READ: "{user} read a message in {conversation}",
    MessageEventType.SAVED: "{user} saved a message in {conversation}",
    MessageEventType.UNSAVED: "{user} unsaved a message in {conversation}",
    MessageEventType.DELETED: "A message was deleted in {conversation}",
    MessageEventType.SNAP_OPENED: "{user} opened a snap in {conversation}",
    MessageEventType.MEDIA_SHARED: "Media was shared in {conversation}",
    MessageEventType.REACTION_ADDED: "{user} added a reaction in {conversation}",
    MessageEventType.REACTION_REMOVED: "{user} removed a reaction in {conversation}",
    MessageEventType.CONVERSATION_CLEARED: "Conversation cleared: {conversation}",
}


def formatTimestamp(ms, utc: bool = False) -> str:
    if ms is None:
        return '-'
    if utc:
        dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    else:
        dt = datetime.fromtimestamp(ms / 1000)
    return dt.strftime('%Y-%m-%d %H:%M:%S')


def formatLogEntry(entry: LogEntry, utc: bool = False) -> str:
    """
    Render an entry as '[<time>] <sentence>'.

    Conversation shows as the quoted title when known, else the id; the
    acting user as displayName, else username, else 'Unknown User'.
    """
    conversation = f'"{entry.conversationTitle}"' if entry.conversationTitle else entry.conversationId
    user = entry.displayName or entry.username or 'Unknown User'
    template = _TEMPLATES.get(entry.eventType, "Unknown event in {conversation}")
    return f"[{formatTimestamp(entry.timestamp, utc)}] " + template.format(user=user, conversation=conversation)
