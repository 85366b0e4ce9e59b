"""SQLite record store for raw emails and tickets awaiting triage."""

import logging
import sqlite3
from collections.abc import Iterable
from pathlib import Path

from triage.processing.types import RawEmail, RawTicket
from triage.storage.models import (
    ALL_TABLES,
    email_from_row,
    email_params,
    ticket_from_row,
    ticket_params,
)

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path("data/triage.db")

_EMAIL_COLUMNS = "id, subject, sender, recipients, body, received_at"
_TICKET_COLUMNS = "id, title, description, status, priority, category, created_at"


class CorpusUnavailable(Exception):
    """The record store could not be opened or read."""


class TriageDatabase:
    """Wraps SQLite for the emails and tickets the engine reads.

    Designed for single-threaded use from the CLI; all calls are synchronous.
    An empty store is not an error; only I/O or SQL failures raise
    CorpusUnavailable.

    Usage::

        db = TriageDatabase("data/triage.db")
        db.save_emails(emails)
        recent = db.fetch_emails(limit=500)
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._path = Path(db_path)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._path))
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._create_tables()
        except (OSError, sqlite3.Error) as exc:
            raise CorpusUnavailable(f"Cannot open record store at {self._path}: {exc}") from exc

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()

    # ── Write API ───────────────────────────────────────────────────────────────

    def save_emails(self, emails: Iterable[RawEmail]) -> int:
        """Insert or update emails in a single transaction; returns the row count.

        Idempotent: re-importing the same export updates rows in place.
        """
        params = [email_params(e) for e in emails]
        try:
            with self._conn:
                self._conn.executemany(
                    f"""
                    INSERT INTO emails ({_EMAIL_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        subject     = excluded.subject,
                        sender      = excluded.sender,
                        recipients  = excluded.recipients,
                        body        = excluded.body,
                        received_at = excluded.received_at
                    """,
                    params,
                )
        except sqlite3.Error as exc:
            raise CorpusUnavailable(f"Cannot write emails to {self._path}: {exc}") from exc
        logger.info("Saved %d email(s) to %s", len(params), self._path)
        return len(params)

    def save_tickets(self, tickets: Iterable[RawTicket]) -> int:
        """Insert or update tickets in a single transaction; returns the row count."""
        params = [ticket_params(t) for t in tickets]
        try:
            with self._conn:
                self._conn.executemany(
                    f"""
                    INSERT INTO tickets ({_TICKET_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        title       = excluded.title,
                        description = excluded.description,
                        status      = excluded.status,
                        priority    = excluded.priority,
                        category    = excluded.category,
                        created_at  = excluded.created_at
                    """,
                    params,
                )
        except sqlite3.Error as exc:
            raise CorpusUnavailable(f"Cannot write tickets to {self._path}: {exc}") from exc
        logger.info("Saved %d ticket(s) to %s", len(params), self._path)
        return len(params)

    # ── Read API ────────────────────────────────────────────────────────────────

    def fetch_emails(self, ids: Iterable[str] | None = None, limit: int = 500) -> list[RawEmail]:
        """Return emails newest first, optionally restricted to the given ids."""
        if ids is None:
            rows = self._query(
                f"SELECT {_EMAIL_COLUMNS} FROM emails ORDER BY received_at DESC, id LIMIT ?",
                (limit,),
            )
        else:
            wanted = list(dict.fromkeys(ids))
            if not wanted:
                return []
            placeholders = ", ".join("?" for _ in wanted)
            rows = self._query(
                f"SELECT {_EMAIL_COLUMNS} FROM emails WHERE id IN ({placeholders}) "
                "ORDER BY received_at DESC, id LIMIT ?",
                (*wanted, limit),
            )
        return [email_from_row(r) for r in rows]

    def fetch_tickets(self, limit: int = 500) -> list[RawTicket]:
        """Return tickets newest first."""
        rows = self._query(
            f"SELECT {_TICKET_COLUMNS} FROM tickets ORDER BY created_at DESC, id LIMIT ?",
            (limit,),
        )
        return [ticket_from_row(r) for r in rows]

    def get_email(self, email_id: str) -> RawEmail | None:
        """Return the stored email for email_id, or None if not found."""
        rows = self._query(f"SELECT {_EMAIL_COLUMNS} FROM emails WHERE id = ?", (email_id,))
        return email_from_row(rows[0]) if rows else None

    # ── Private ─────────────────────────────────────────────────────────────────

    def _create_tables(self) -> None:
        with self._conn:
            for ddl in ALL_TABLES:
                self._conn.execute(ddl)

    def _query(self, sql: str, params: tuple) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise CorpusUnavailable(f"Cannot read record store at {self._path}: {exc}") from exc
