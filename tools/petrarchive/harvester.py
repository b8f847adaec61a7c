"""Core crawl logic – orchestrates catalog → diff → threads → store → audit."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable

import httpx
from rich.progress import Progress, SpinnerColumn, BarColumn, TextColumn, TimeElapsedColumn

from .api import SiteClient
from .audit import audit_reply_counts
from .config import CrawlConfig
from .db import Database
from .differ import diff_catalog
from .models import OriginalPost, Post, PostNode, ReplyPost, ThreadSummary
from .parser import ParseError, parse_catalog, parse_thread, parse_timestamp
from .storage import DiskStorageService

logger = logging.getLogger("petrarchive.core")


class CatalogError(RuntimeError):
    """The catalog could not be fetched or parsed; nothing is safe to scrape."""


class Harvester:
    """Orchestrates one incremental crawl of the board into the archive."""

    def __init__(
        self,
        cfg: CrawlConfig | None = None,
        *,
        api: SiteClient | None = None,
        db: Database | None = None,
        storage: DiskStorageService | None = None,
    ) -> None:
        self.cfg = cfg or CrawlConfig()
        self.api = api if api is not None else SiteClient(self.cfg.site)
        self.db = db if db is not None else Database(self.cfg.db)
        self.storage = storage if storage is not None else DiskStorageService(self.cfg.archive, api=self.api)
        self._running = threading.Lock()
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> dict[str, int]:
        return {
            "new": 0, "updated": 0, "skipped": 0,
            "threads": 0, "posts": 0, "images": 0,
            "errors": 0, "corrected": 0,
        }

    # ── catalog ──────────────────────────────────────────────────

    def fetch_catalog(self) -> list[ThreadSummary]:
        """Fetch and parse the catalog.  Any failure raises CatalogError."""
        try:
            fetched = self.api.get_catalog()
            if fetched is None:
                raise CatalogError("catalog page not found")
            threads = parse_catalog(fetched[0])
        except (httpx.HTTPError, ParseError) as exc:
            raise CatalogError(f"error visiting catalog: {exc}") from exc
        logger.info("Successfully scraped catalog, found %d threads", len(threads))
        return threads

    # ── post mapping ─────────────────────────────────────────────

    def _process_image(self, node: PostNode) -> str | None:
        if not node.image_href or not self.cfg.download_images:
            return None
        path = self.storage.store(node.image_href, node.raw_id)
        if path is None:
            self.stats["errors"] += 1
        else:
            self.stats["images"] += 1
        return path

    def _map_post(self, node: PostNode, thread_id: str, replies: int) -> Post:
        """Turn a freshly parsed node into a storable post."""
        common = dict(
            id=node.raw_id,
            thread_id=thread_id,
            author=node.author,
            created_at=parse_timestamp(node.timestamp_text),
            body=node.body_text,
            remote_image_url=node.image_href,
            local_image_path=self._process_image(node),
        )
        if node.is_op:
            return OriginalPost(title=node.title, reply_count=replies, **common)
        return ReplyPost(**common)

    # ── thread harvesting ────────────────────────────────────────

    def scrape_thread(self, thread_id: str, known_ids: set[str]) -> int:
        """Fetch one thread and store whatever is new in it.

        ``known_ids`` is updated with every post stored.  Returns the number
        of posts written.  Fetch and parse errors propagate to the caller.
        """
        fetched = self.api.get_thread(thread_id)
        if fetched is None:
            raise ParseError(f"thread {thread_id} not found")
        html, page_url = fetched

        nodes, total = parse_thread(html, page_url, known_ids)
        replies = total - 1
        logger.info("Thread %s: Found %d posts total, %d to process", thread_id, total, len(nodes))

        stored = 0
        for node in nodes:
            if node.is_op and node.known:
                if self.db.update_reply_count(node.raw_id, replies):
                    logger.info("Updated reply count for post %s to %d", node.raw_id, replies)
                continue

            post = self._map_post(node, thread_id, replies)
            if self.db.upsert_post(post):
                known_ids.add(post.id)
                stored += 1
                logger.debug("Successfully stored post %s", post.id)
            else:
                self.stats["errors"] += 1

        self.stats["posts"] += stored
        self.stats["threads"] += 1
        return stored

    def harvest_threads(self, thread_ids: Iterable[str], known_ids: set[str], *, show_progress: bool = False) -> int:
        """Scrape each thread in order; a failing thread is logged and skipped."""
        thread_ids = list(thread_ids)
        harvested = 0
        if not thread_ids:
            return harvested

        logger.info("Scraping %d threads", len(thread_ids))
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            disable=not show_progress,
        ) as progress:
            task = progress.add_task("threads", total=len(thread_ids))
            for tid in thread_ids:
                logger.info("Scraping thread %s", tid)
                try:
                    self.scrape_thread(tid, known_ids)
                    harvested += 1
                except Exception as exc:
                    logger.error("Error scraping thread %s: %s", tid, exc)
                    self.stats["errors"] += 1
                progress.advance(task)
        return harvested

    # ── full run ─────────────────────────────────────────────────

    def run(self, *, show_progress: bool = False) -> dict[str, int] | None:
        """Run one incremental crawl.

        Returns the run statistics, or None when another run on this
        instance is still in progress.  Raises CatalogError when the
        catalog is unusable.
        """
        if not self._running.acquire(blocking=False):
            logger.warning("A crawl is already in progress, skipping this run")
            return None
        try:
            return self._run(show_progress)
        finally:
            self._running.release()

    def _run(self, show_progress: bool) -> dict[str, int]:
        started = time.monotonic()
        self.stats = self._empty_stats()
        logger.info("Starting catalog scrape")
        self.storage.ensure_root()

        known_ids = self.db.get_post_ids()
        logger.info("Loaded %d known post IDs from database", len(known_ids))
        audit_reply_counts(self.db)

        try:
            threads = self.fetch_catalog()
        except CatalogError as exc:
            logger.error("Aborting run: %s", exc)
            raise

        work = diff_catalog(threads, known_ids, self.db, self.cfg.max_threads)
        self.stats["new"] = work.new
        self.stats["updated"] = work.updated
        self.stats["skipped"] = work.unchanged

        self.harvest_threads(work.thread_ids, known_ids, show_progress=show_progress)

        self.stats["corrected"] = audit_reply_counts(self.db)
        logger.info(
            "Scrape complete in %.1fs: %d new, %d updated, %d skipped threads, %d posts stored",
            time.monotonic() - started,
            self.stats["new"], self.stats["updated"], self.stats["skipped"], self.stats["posts"],
            extra={"stats": dict(self.stats)},
        )
        return dict(self.stats)

    # ── lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        self.api.close()
        self.db.close()

    def __enter__(self) -> Harvester:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
