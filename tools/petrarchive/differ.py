"""Catalog diff – decide which threads need a fresh visit."""

from __future__ import annotations

import logging
from collections.abc import Container, Iterable
from typing import Protocol

from .models import ThreadSummary, Worklist

logger = logging.getLogger("petrarchive.differ")


class ReplyCountSource(Protocol):
    def get_reply_count(self, thread_id: str) -> int: ...


def diff_catalog(
    threads: Iterable[ThreadSummary],
    known_ids: Container[str],
    store: ReplyCountSource,
    max_threads: int,
) -> Worklist:
    """Classify catalog threads as new, updated or unchanged.

    New and updated threads go on the worklist in catalog order; the list
    is then cut to ``max_threads`` without reordering.
    """
    work = Worklist()
    for thread in threads:
        if thread.id not in known_ids:
            work.thread_ids.append(thread.id)
            work.new += 1
            logger.info("New thread found: %s (%d replies)", thread.id, thread.observed_reply_count)
            continue

        stored = store.get_reply_count(thread.id)
        if thread.observed_reply_count > stored:
            work.thread_ids.append(thread.id)
            work.updated += 1
            logger.info("Thread updated: %s (%d -> %d replies)", thread.id, stored, thread.observed_reply_count)
        else:
            work.unchanged += 1

    if max_threads > 0 and len(work.thread_ids) > max_threads:
        work.dropped = len(work.thread_ids) - max_threads
        del work.thread_ids[max_threads:]
        logger.info("Worklist capped at %d threads, %d left for the next run", max_threads, work.dropped)

    logger.info(
        "Identified %d new threads and %d updated threads to scrape (%d unchanged)",
        work.new, work.updated, work.unchanged,
        extra={"new": work.new, "updated": work.updated, "unchanged": work.unchanged},
    )
    return work
