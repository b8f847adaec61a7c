"""Tests for the store's error policy (no PostgreSQL server required)."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import psycopg

from petrarchive.db import Database
from petrarchive.models import OriginalPost, ReplyPost


def _db(execute) -> Database:
    db = Database()
    conn = MagicMock()
    conn.closed = False
    conn.execute.side_effect = execute
    db._conn = conn
    return db


def _broken(*args, **kwargs):
    raise psycopg.OperationalError("connection lost")


NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


class TestErrorPolicy:
    def test_failed_reads_return_empty(self):
        db = _db(_broken)
        assert db.get_post_ids() == set()
        assert db.get_reply_count("100") == 0
        assert db.count_replies("100") is None
        assert db.get_threads() == {}

    def test_failed_writes_are_skipped(self):
        db = _db(_broken)
        post = ReplyPost(id="101", thread_id="100", author="a", created_at=NOW, body="b")
        assert db.upsert_post(post) is False
        assert db.update_reply_count("100", 3) is False


class TestUpsert:
    def test_original_post_columns(self):
        db = _db(lambda *a, **k: MagicMock())
        post = OriginalPost(
            id="100", thread_id="100", author="a", created_at=NOW, body="b",
            title="T", reply_count=4, remote_image_url="https://x/1.png",
        )

        assert db.upsert_post(post) is True

        sql, params = db.conn.execute.call_args.args
        assert "ON CONFLICT (id)" in sql
        assert params == ("100", "100", True, "T", "a", NOW, "b", "https://x/1.png", None, 4)

    def test_reply_has_no_title_or_count(self):
        db = _db(lambda *a, **k: MagicMock())
        db.upsert_post(ReplyPost(id="101", thread_id="100", author="a", created_at=NOW, body="b"))

        _, params = db.conn.execute.call_args.args
        assert params[2:4] == (False, "")
        assert params[-1] == 0
