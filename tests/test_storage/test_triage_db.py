"""Tests for the SQLite record store."""

import sqlite3
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from triage.processing.types import RawEmail, RawTicket
from triage.storage.db import CorpusUnavailable, TriageDatabase

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# ── Helpers ────────────────────────────────────────────────────────────────────


def make_email(id: str = "e1", hours: int = 0, **kwargs: object) -> RawEmail:
    defaults: dict[str, object] = dict(
        id=id,
        subject="Login broken",
        sender="alice@example.com",
        received_at=T0 + timedelta(hours=hours),
        body="Error on the password page.",
        recipients=("support@example.com",),
    )
    return RawEmail(**{**defaults, **kwargs})  # type: ignore[arg-type]


def make_ticket(id: str = "T-1", days: int = 0, **kwargs: object) -> RawTicket:
    defaults: dict[str, object] = dict(
        id=id,
        title="Login failures",
        created_at=T0 - timedelta(days=days),
        description="Users see an error.",
        status="open",
        priority="high",
        category="bug",
    )
    return RawTicket(**{**defaults, **kwargs})  # type: ignore[arg-type]


@pytest.fixture
def db(tmp_path: Path) -> Iterator[TriageDatabase]:
    database = TriageDatabase(tmp_path / "triage.db")
    yield database
    database.close()


# ── Tests ──────────────────────────────────────────────────────────────────────


class TestEmails:
    def test_round_trip(self, db: TriageDatabase) -> None:
        db.save_emails([make_email()])
        assert db.get_email("e1") == make_email()

    def test_missing_email_is_none(self, db: TriageDatabase) -> None:
        assert db.get_email("nope") is None

    def test_upsert_is_idempotent(self, db: TriageDatabase) -> None:
        db.save_emails([make_email()])
        db.save_emails([make_email(subject="Login still broken")])
        emails = db.fetch_emails()
        assert len(emails) == 1
        assert emails[0].subject == "Login still broken"

    def test_fetch_newest_first_with_limit(self, db: TriageDatabase) -> None:
        db.save_emails([make_email("e1", 0), make_email("e2", 5), make_email("e3", 2)])
        assert [e.id for e in db.fetch_emails()] == ["e2", "e3", "e1"]
        assert [e.id for e in db.fetch_emails(limit=1)] == ["e2"]

    def test_fetch_by_ids(self, db: TriageDatabase) -> None:
        db.save_emails([make_email("e1", 0), make_email("e2", 5)])
        assert [e.id for e in db.fetch_emails(ids=["e1", "missing"])] == ["e1"]
        assert db.fetch_emails(ids=[]) == []

    def test_timestamps_returned_as_utc(self, db: TriageDatabase) -> None:
        other_zone = timezone(timedelta(hours=2))
        db.save_emails([make_email(received_at=datetime(2026, 3, 2, 11, 0, tzinfo=other_zone))])
        stored = db.get_email("e1")
        assert stored is not None
        assert stored.received_at == T0
        assert stored.received_at.utcoffset() == timedelta(0)

    def test_empty_store(self, db: TriageDatabase) -> None:
        assert db.fetch_emails() == []
        assert db.fetch_tickets() == []


class TestTickets:
    def test_round_trip_newest_first(self, db: TriageDatabase) -> None:
        db.save_tickets([make_ticket("T-1", 3), make_ticket("T-2", 1, category=None)])
        tickets = db.fetch_tickets()
        assert [t.id for t in tickets] == ["T-2", "T-1"]
        assert tickets[0].category is None
        assert tickets[1] == make_ticket("T-1", 3)


class TestUnavailable:
    def test_unopenable_path(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(CorpusUnavailable):
            TriageDatabase(blocker / "triage.db")

    def test_read_failure(self, tmp_path: Path) -> None:
        database = TriageDatabase(tmp_path / "triage.db")
        conn = sqlite3.connect(str(tmp_path / "triage.db"))
        conn.execute("DROP TABLE emails")
        conn.commit()
        conn.close()
        try:
            with pytest.raises(CorpusUnavailable):
                database.fetch_emails()
        finally:
            database.close()
