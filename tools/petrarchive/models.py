"""Records passed between the catalog, scraper and store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Union


@dataclass(frozen=True)
class ThreadSummary:
    """One catalog entry: a thread id and the reply count shown next to it."""
    id: str
    observed_reply_count: int


@dataclass
class PostNode:
    """Fields pulled from one post block, before normalisation.

    Content fields stay empty when the post was already known and
    extraction was skipped.
    """
    raw_id: str
    is_op: bool
    known: bool = False
    title: str = ""
    author: str = ""
    timestamp_text: str = ""
    body_text: str = ""
    image_href: str | None = None


@dataclass
class _PostFields:
    id: str
    thread_id: str
    author: str
    created_at: datetime
    body: str
    remote_image_url: str | None = None
    local_image_path: str | None = None


@dataclass
class OriginalPost(_PostFields):
    title: str = ""
    reply_count: int = 0

    is_op = True


@dataclass
class ReplyPost(_PostFields):
    is_op = False


Post = Union[OriginalPost, ReplyPost]


@dataclass
class Worklist:
    """Thread ids selected for scraping, in catalog order, plus diff counts."""
    thread_ids: list[str] = field(default_factory=list)
    new: int = 0
    updated: int = 0
    unchanged: int = 0
    dropped: int = 0

    def __len__(self) -> int:
        return len(self.thread_ids)
