"""
Audit log of processed events.

Every handler in the notification service appends one AuditEntry describing
what it did. The log is injected (created by the Runtime), bounded, and read
by the status and events endpoints.
"""

import logging
from collections import Counter, deque
from typing import Optional

from shared.models import AuditEntry, utcnow

logger = logging.getLogger("audit")


class AuditTypes:
    """Audit event type names (upper snake case, as shown by the API)."""
    BOOK_BORROWED = "BOOK_BORROWED"
    BOOK_RETURNED = "BOOK_RETURNED"
    USER_DELETED = "USER_DELETED"
    BOOK_ADDED = "BOOK_ADDED"
    BOOK_UPDATED = "BOOK_UPDATED"


class AuditLog:
    """In-memory, bounded audit log. Oldest entries are evicted first."""

    def __init__(self, max_entries: int = 10_000):
        self._entries: deque[AuditEntry] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, entry: AuditEntry) -> AuditEntry:
        if entry.processed_at is None:
            entry.processed_at = utcnow()
        self._entries.append(entry)
        logger.debug(f"Audit {entry.event_type}: {'; '.join(entry.actions)}")
        return entry

    def entries(self, event_type: Optional[str] = None) -> list[AuditEntry]:
        """All entries in arrival order, optionally filtered by type (case-insensitive)."""
        if event_type is None:
            return list(self._entries)
        wanted = event_type.upper()
        return [e for e in self._entries if e.event_type == wanted]

    def statistics(self) -> dict:
        counts = Counter(e.event_type for e in self._entries)
        return {
            "totalEventsProcessed": len(self._entries),
            "eventsByType": dict(counts),
            "emailsSent": sum(e.emails_sent for e in self._entries),
            "emailsFailed": sum(e.emails_failed for e in self._entries),
            "errors": sum(1 for e in self._entries if e.error),
        }

    def clear(self) -> None:
        self._entries.clear()
