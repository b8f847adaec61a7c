"""Database operations – archived posts in PostgreSQL.

Every write is a single autocommitted statement.  A failed read is logged
and answered with an empty result, a failed write is logged and skipped;
the audit pass repairs whatever that leaves behind.
"""

from __future__ import annotations

import logging

import psycopg
from psycopg.rows import dict_row

from .config import DatabaseConfig
from .models import OriginalPost, Post

logger = logging.getLogger("petrarchive.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS posts (
    id          TEXT PRIMARY KEY,
    thread_id   TEXT NOT NULL,
    is_op       BOOLEAN NOT NULL DEFAULT FALSE,
    title       TEXT NOT NULL DEFAULT '',
    author      TEXT NOT NULL DEFAULT '',
    created_at  TIMESTAMPTZ NOT NULL,
    body        TEXT NOT NULL DEFAULT '',
    image_url   TEXT,
    image_path  TEXT,
    replies     INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS posts_thread_id_idx ON posts (thread_id) WHERE NOT is_op;
"""


class Database:
    """Postgres interface for the archiver."""

    def __init__(self, cfg: DatabaseConfig | None = None) -> None:
        self.cfg = cfg or DatabaseConfig.from_env()
        self._conn: psycopg.Connection | None = None

    @property
    def conn(self) -> psycopg.Connection:
        if self._conn is None or self._conn.closed:
            self._conn = psycopg.connect(self.cfg.dsn, row_factory=dict_row, autocommit=True)
        return self._conn

    @staticmethod
    def _failed(what: str, exc: psycopg.Error) -> None:
        logger.error("Error %s: %s", what, exc)

    def ensure_schema(self) -> None:
        self.conn.execute(SCHEMA)

    # ── reads ────────────────────────────────────────────────────

    def get_post_ids(self) -> set[str]:
        """Ids of every stored post."""
        try:
            rows = self.conn.execute("SELECT id FROM posts").fetchall()
        except psycopg.Error as exc:
            self._failed("querying post IDs", exc)
            return set()
        return {row["id"] for row in rows}

    def get_reply_count(self, thread_id: str) -> int:
        """Stored reply count of a thread's original post (0 if missing)."""
        try:
            row = self.conn.execute(
                "SELECT replies FROM posts WHERE id = %s AND is_op", (thread_id,)
            ).fetchone()
        except psycopg.Error as exc:
            self._failed(f"checking replies for thread {thread_id}", exc)
            return 0
        return row["replies"] if row else 0

    def count_replies(self, thread_id: str) -> int | None:
        """Number of stored replies in a thread, or None if the query failed."""
        try:
            row = self.conn.execute(
                "SELECT COUNT(*) AS n FROM posts WHERE thread_id = %s AND NOT is_op", (thread_id,)
            ).fetchone()
        except psycopg.Error as exc:
            self._failed(f"counting actual replies for thread {thread_id}", exc)
            return None
        return row["n"]

    def get_threads(self) -> dict[str, int]:
        """Stored reply count of every original post, keyed by thread id."""
        try:
            rows = self.conn.execute("SELECT id, replies FROM posts WHERE is_op").fetchall()
        except psycopg.Error as exc:
            self._failed("querying thread IDs", exc)
            return {}
        return {row["id"]: row["replies"] for row in rows}

    # ── writes ───────────────────────────────────────────────────

    def upsert_post(self, post: Post) -> bool:
        """Insert a post, replacing any row with the same id."""
        is_op = isinstance(post, OriginalPost)
        try:
            self.conn.execute(
                """INSERT INTO posts (id, thread_id, is_op, title, author, created_at,
                                      body, image_url, image_path, replies)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                   ON CONFLICT (id) DO UPDATE SET
                       thread_id  = EXCLUDED.thread_id,
                       is_op      = EXCLUDED.is_op,
                       title      = EXCLUDED.title,
                       author     = EXCLUDED.author,
                       created_at = EXCLUDED.created_at,
                       body       = EXCLUDED.body,
                       image_url  = EXCLUDED.image_url,
                       image_path = EXCLUDED.image_path,
                       replies    = EXCLUDED.replies""",
                (
                    post.id, post.thread_id, is_op,
                    post.title if is_op else "",
                    post.author, post.created_at, post.body,
                    post.remote_image_url, post.local_image_path,
                    post.reply_count if is_op else 0,
                ),
            )
        except psycopg.Error as exc:
            self._failed(f"storing post {post.id}", exc)
            return False
        return True

    def update_reply_count(self, post_id: str, replies: int) -> bool:
        try:
            self.conn.execute("UPDATE posts SET replies = %s WHERE id = %s", (replies, post_id))
        except psycopg.Error as exc:
            self._failed(f"updating reply count for post {post_id}", exc)
            return False
        return True

    # ── lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        if self._conn and not self._conn.closed:
            self._conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
