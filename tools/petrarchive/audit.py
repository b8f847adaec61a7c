"""Reply-count audit – make every OP's stored count match its stored replies."""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("petrarchive.audit")


class AuditStore(Protocol):
    def get_threads(self) -> dict[str, int]: ...
    def count_replies(self, thread_id: str) -> int | None: ...
    def update_reply_count(self, post_id: str, replies: int) -> bool: ...


def audit_reply_counts(store: AuditStore) -> int:
    """Recount replies of every stored thread and fix mismatches.

    Returns the number of threads corrected.  Threads whose count cannot be
    read or written are logged and left for the next audit.
    """
    threads = store.get_threads()
    corrected = 0
    for thread_id, stored in threads.items():
        actual = store.count_replies(thread_id)
        if actual is None or actual == stored:
            continue
        if not store.update_reply_count(thread_id, actual):
            continue
        logger.info(
            "Thread %s: Updated reply count from %d to %d", thread_id, stored, actual,
            extra={"thread_id": thread_id, "stored": stored, "actual": actual},
        )
        corrected += 1

    logger.info("Reply count audit complete: updated %d of %d threads", corrected, len(threads))
    return corrected
