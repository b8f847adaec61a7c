"""Shared fixtures: a fake board served over httpx.MockTransport and an in-memory store."""

from __future__ import annotations

import io
from datetime import datetime, timezone

import httpx
import pytest
from PIL import Image

from petrarchive.api import SiteClient
from petrarchive.config import ArchiveConfig, CrawlConfig, SiteConfig
from petrarchive.harvester import Harvester
from petrarchive.models import OriginalPost, Post, ReplyPost
from petrarchive.storage import DiskStorageService

BASE_URL = "https://board.test"


# ── HTML builders ────────────────────────────────────────────────


def catalog_html(threads: list[tuple[str, int]]) -> str:
    previews = "".join(
        f"""
        <div class="preview">
          <a href="/pt/thread/{tid}"><img src="/thumb/{tid}.jpg"></a>
          <div class="counts"><span class="count">{replies} replies</span><span class="count">1 images</span></div>
        </div>"""
        for tid, replies in threads
    )
    return f"<html><body><div class='catalog'>{previews}</div></body></html>"


def post_html(
    post_id: str,
    *,
    op: bool = False,
    title: str = "",
    nick: str = "Anonymous",
    time: str = "2024-05-01 12:30:00 UTC",
    body: str = "",
    image: str | None = None,
) -> str:
    kind = "orig" if op else "reply"
    title_html = f'<span class="post-title">{title}</span>' if op else ""
    image_html = f'<div class="post-image-frame"><a href="{image}"><img></a></div>' if image else ""
    return f"""
    <div class="post {kind}">
      <div class="post-info">
        {title_html}<span class="post-nick">{nick}</span>
        <span class="post-time" title="{time}">May 1</span>
        <a class="subtle-link" href="#p{post_id}">No.{post_id}</a>
      </div>
      {image_html}
      <p class="post-body">{body or 'post ' + post_id}</p>
    </div>"""


def thread_html(op_id: str, reply_ids: list[str], *, title: str = "A thread", image: str | None = None) -> str:
    posts = post_html(op_id, op=True, title=title, image=image)
    posts += "".join(post_html(rid) for rid in reply_ids)
    return f"<html><body><div class='thread'>{posts}</div></body></html>"


def image_bytes(size: tuple[int, int] = (600, 300), fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(buf, format=fmt)
    return buf.getvalue()


# ── fake board ───────────────────────────────────────────────────


class FakeBoard:
    """Routes URL → (status, body); records every request made."""

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, bytes]] = {}
        self.requests: list[str] = []

    def add(self, path: str, body: str | bytes, status: int = 200) -> None:
        data = body.encode() if isinstance(body, str) else body
        self.routes[BASE_URL + path] = (status, data)

    def set_catalog(self, threads: list[tuple[str, int]]) -> None:
        self.add("/pt/catalog", catalog_html(threads))

    def set_thread(self, op_id: str, reply_ids: list[str], **kwargs: object) -> None:
        self.add(f"/pt/thread/{op_id}", thread_html(op_id, reply_ids, **kwargs))  # type: ignore[arg-type]

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        status, body = self.routes.get(url, (404, b"not found"))
        return httpx.Response(status, content=body)

    def thread_requests(self) -> list[str]:
        return [u.rsplit("/", 1)[-1] for u in self.requests if "/pt/thread/" in u]


# ── fake store ───────────────────────────────────────────────────


class FakeDatabase:
    """In-memory stand-in for Database with the same method contract."""

    def __init__(self) -> None:
        self.posts: dict[str, Post] = {}
        self.writes: list[tuple[str, str]] = []
        self.fail_writes: set[str] = set()

    def seed_thread(self, op_id: str, reply_ids: list[str], reply_count: int | None = None) -> None:
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.posts[op_id] = OriginalPost(
            id=op_id, thread_id=op_id, author="Anonymous", created_at=now, body="op",
            title="seeded", reply_count=len(reply_ids) if reply_count is None else reply_count,
        )
        for rid in reply_ids:
            self.posts[rid] = ReplyPost(id=rid, thread_id=op_id, author="Anonymous", created_at=now, body="r")

    def ensure_schema(self) -> None:
        pass

    def get_post_ids(self) -> set[str]:
        return set(self.posts)

    def get_reply_count(self, thread_id: str) -> int:
        post = self.posts.get(thread_id)
        return post.reply_count if isinstance(post, OriginalPost) else 0

    def count_replies(self, thread_id: str) -> int | None:
        return sum(1 for p in self.posts.values() if not p.is_op and p.thread_id == thread_id)

    def get_threads(self) -> dict[str, int]:
        return {p.id: p.reply_count for p in self.posts.values() if isinstance(p, OriginalPost)}

    def upsert_post(self, post: Post) -> bool:
        if post.id in self.fail_writes:
            return False
        self.posts[post.id] = post
        self.writes.append(("upsert", post.id))
        return True

    def update_reply_count(self, post_id: str, replies: int) -> bool:
        post = self.posts.get(post_id)
        if isinstance(post, OriginalPost):
            post.reply_count = replies
        self.writes.append(("replies", post_id))
        return True

    def close(self) -> None:
        pass


# ── fixtures ─────────────────────────────────────────────────────


@pytest.fixture
def board() -> FakeBoard:
    return FakeBoard()


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def site_cfg() -> SiteConfig:
    return SiteConfig(base_url=BASE_URL, catalog_delay=0, thread_delay=0, max_retries=1)


@pytest.fixture
def api(board: FakeBoard, site_cfg: SiteConfig):
    client = SiteClient(site_cfg, transport=httpx.MockTransport(board.handler))
    yield client
    client.close()


@pytest.fixture
def archive_cfg(tmp_path) -> ArchiveConfig:
    return ArchiveConfig(archive_dir=tmp_path / "archive")


@pytest.fixture
def make_harvester(api: SiteClient, fake_db: FakeDatabase, site_cfg: SiteConfig, archive_cfg: ArchiveConfig):
    def make(max_threads: int = 61, download_images: bool = True) -> Harvester:
        cfg = CrawlConfig(
            site=site_cfg, archive=archive_cfg, max_threads=max_threads, download_images=download_images,
        )
        storage = DiskStorageService(archive_cfg, api=api)
        return Harvester(cfg, api=api, db=fake_db, storage=storage)  # type: ignore[arg-type]
    return make
