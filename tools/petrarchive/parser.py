"""HTML parsing for the catalog and thread pages."""

from __future__ import annotations

import logging
from collections.abc import Container
from datetime import datetime, timezone
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from .models import PostNode, ThreadSummary

logger = logging.getLogger("petrarchive.parser")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S UTC"

# Sub-elements of a post body that are not part of what the poster wrote
NOISE_SELECTORS = (".fwd-links", ".floating-preview")


class ParseError(ValueError):
    """A page did not have the structure we expect."""


# ── catalog ──────────────────────────────────────────────────────


def thread_id_from_href(href: str) -> str:
    return urlparse(href).path.rstrip("/").rsplit("/", 1)[-1]


def _parse_count(text: str) -> int:
    fields = text.split()
    if not fields:
        return 0
    try:
        return int(fields[0])
    except ValueError:
        return 0


def parse_catalog(html: str) -> list[ThreadSummary]:
    """Extract (thread id, reply count) from each ``.preview`` block, in page order."""
    soup = BeautifulSoup(html, "lxml")
    if soup.body is None:
        raise ParseError("catalog page has no body")

    threads: list[ThreadSummary] = []
    for preview in soup.select(".preview"):
        link = preview.find("a", href=True)
        if link is None:
            continue
        thread_id = thread_id_from_href(link["href"])
        if not thread_id:
            continue
        count = preview.select_one(".counts .count:first-child")
        replies = _parse_count(count.get_text(" ", strip=True)) if count else 0
        threads.append(ThreadSummary(id=thread_id, observed_reply_count=replies))
    return threads


# ── thread ───────────────────────────────────────────────────────


def parse_post_id(text: str) -> str:
    text = text.strip()
    return text.removeprefix("No.").strip()


def parse_timestamp(text: str) -> datetime:
    """Parse the machine-readable post time; fall back to now."""
    try:
        return datetime.strptime(text.strip(), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        logger.error("Error parsing timestamp %r, using current time", text)
        return datetime.now(timezone.utc)


def clean_body(node: Tag, selector: str) -> str:
    """Text of the first ``selector`` match with noise sub-elements removed."""
    body = node.select_one(selector)
    if body is None:
        return ""
    for noise in body.select(", ".join(NOISE_SELECTORS)):
        noise.decompose()
    return body.get_text().strip()


def _child_text(node: Tag, selector: str) -> str:
    el = node.select_one(selector)
    return el.get_text(strip=True) if el else ""


def _child_attr(node: Tag, selector: str, attr: str) -> str:
    el = node.select_one(selector)
    value = el.get(attr) if el else None
    return value.strip() if isinstance(value, str) else ""


def _parse_post(node: Tag, is_op: bool, page_url: str, known_ids: Container[str]) -> PostNode | None:
    raw_id = parse_post_id(_child_text(node, "a.subtle-link"))
    if not raw_id:
        logger.warning("Post block without an id on %s", page_url)
        return None

    post = PostNode(raw_id=raw_id, is_op=is_op, known=raw_id in known_ids)
    if post.known:
        return post

    if is_op:
        post.title = _child_text(node, "span.post-title")
    post.author = _child_text(node, "span.post-nick")
    post.timestamp_text = _child_attr(node, "span.post-time", "title")
    post.body_text = clean_body(node, "p.post-body")
    if not post.body_text and not is_op:
        post.body_text = clean_body(node, "div.post-body")
    href = _child_attr(node, ".post-image-frame a", "href")
    if href:
        try:
            post.image_href = urljoin(page_url, href)
        except ValueError as exc:
            logger.warning("Ignoring malformed image link %r on post %s: %s", href, raw_id, exc)
    return post


def parse_thread(html: str, page_url: str, known_ids: Container[str]) -> tuple[list[PostNode], int]:
    """Parse a thread page.

    Returns the posts worth looking at (the OP first, then unknown replies
    in page order) and the total number of post blocks on the page.
    Known replies are dropped here; a known OP is returned with
    ``known=True`` and no content so its reply count can be refreshed.
    """
    soup = BeautifulSoup(html, "lxml")
    op_node = soup.select_one(".post.orig")
    if op_node is None:
        raise ParseError(f"no original post on {page_url}")

    reply_nodes = soup.select(".post.reply")
    total = 1 + len(reply_nodes)

    op = _parse_post(op_node, True, page_url, known_ids)
    if op is None:
        raise ParseError(f"original post without an id on {page_url}")
    if op.known:
        logger.info("OP %s already in database, updating reply count only", op.raw_id)

    posts = [op]
    for node in reply_nodes:
        reply = _parse_post(node, False, page_url, known_ids)
        if reply is None or reply.known:
            continue
        posts.append(reply)
    return posts, total
