"""Board HTTP client – single-connection, politely delayed, retrying fetcher."""

from __future__ import annotations

import logging
import random
import time

import httpx

from .config import SiteConfig

logger = logging.getLogger("petrarchive.api")


class Throttle:
    """Sleeps a random interval in ``[0, max_delay)`` before each request.

    One instance per visit (the catalog, or one thread page); instances
    share no state.
    """

    def __init__(self, max_delay: float) -> None:
        self.max_delay = max_delay

    def wait(self) -> None:
        if self.max_delay > 0:
            time.sleep(random.uniform(0, self.max_delay))


class SiteClient:
    """Thin wrapper around the board's HTML pages and image host."""

    def __init__(self, cfg: SiteConfig | None = None, transport: httpx.BaseTransport | None = None) -> None:
        self.cfg = cfg or SiteConfig()
        self._client = httpx.Client(
            timeout=self.cfg.timeout,
            headers={"User-Agent": self.cfg.user_agent},
            follow_redirects=True,
            limits=httpx.Limits(max_connections=1, max_keepalive_connections=1),
            transport=transport,
        )

    def _get(self, url: str, throttle: Throttle | None = None) -> httpx.Response | None:
        for attempt in range(1, self.cfg.max_retries + 1):
            if throttle is not None:
                throttle.wait()
            try:
                resp = self._client.get(url)
                if resp.status_code == 404:
                    logger.warning("404: %s", url)
                    return None
                resp.raise_for_status()
                return resp
            except httpx.HTTPError as exc:
                logger.warning("Attempt %d/%d failed for %s: %s", attempt, self.cfg.max_retries, url, exc)
                if attempt == self.cfg.max_retries:
                    raise
                time.sleep(2 ** attempt)
        return None

    # ── public API ───────────────────────────────────────────────

    def get_catalog(self) -> tuple[str, str] | None:
        """Fetch the catalog page.  Returns (html, final url)."""
        url = self.cfg.catalog_url
        logger.info("Visiting catalog URL: %s", url)
        resp = self._get(url, Throttle(self.cfg.catalog_delay))
        return (resp.text, str(resp.url)) if resp is not None else None

    def get_thread(self, thread_id: str) -> tuple[str, str] | None:
        """Fetch one thread page (OP + all replies).  Returns (html, final url)."""
        url = self.cfg.thread_url(thread_id)
        logger.info("Visiting thread URL: %s", url)
        resp = self._get(url, Throttle(self.cfg.thread_delay))
        return (resp.text, str(resp.url)) if resp is not None else None

    def download(self, url: str) -> bytes | None:
        """Download an attached image."""
        resp = self._get(url)
        return resp.content if resp is not None else None

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> SiteClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
