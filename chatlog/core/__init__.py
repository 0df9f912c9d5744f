"""
Chatlog Core Package

Message event instrumentation engine: interposition of host client calls,
snapshot diffing of the conversation store, a capped in-memory event log,
asynchronous identity enrichment and leveled self-diagnostics.

Architecture Invariants:
- Interposed calls always reach the original and return its result
- Log store is append-only, capped, FIFO-evicted
- Timestamps are assigned once, at append
- Nothing raises past the instrumentation boundary into the host
"""

__version__ = "1.0.0"
