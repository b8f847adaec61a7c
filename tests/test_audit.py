"""Tests for the reply-count audit pass."""

from petrarchive.audit import audit_reply_counts


class TestAudit:
    def test_converges_to_stored_replies(self, fake_db):
        fake_db.seed_thread("100", ["101", "102"], reply_count=9)
        fake_db.seed_thread("200", ["201"], reply_count=0)
        fake_db.seed_thread("300", ["301", "302", "303"])

        corrected = audit_reply_counts(fake_db)

        assert corrected == 2
        assert fake_db.get_threads() == {"100": 2, "200": 1, "300": 3}
        assert fake_db.writes == [("replies", "100"), ("replies", "200")]

    def test_second_pass_is_a_no_op(self, fake_db):
        fake_db.seed_thread("100", ["101"], reply_count=4)
        audit_reply_counts(fake_db)
        fake_db.writes.clear()

        assert audit_reply_counts(fake_db) == 0
        assert fake_db.writes == []

    def test_unreadable_count_is_left_alone(self, fake_db, monkeypatch):
        fake_db.seed_thread("100", ["101"], reply_count=4)
        monkeypatch.setattr(fake_db, "count_replies", lambda thread_id: None)

        assert audit_reply_counts(fake_db) == 0
        assert fake_db.get_threads() == {"100": 4}
