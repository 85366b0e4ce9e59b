"""SQLite table schemas and row conversions for the record store."""

import json
import sqlite3
from datetime import datetime, timezone

from triage.processing.types import RawEmail, RawTicket


# ── DDL ────────────────────────────────────────────────────────────────────────

_CREATE_EMAILS = """
CREATE TABLE IF NOT EXISTS emails (
    id           TEXT PRIMARY KEY,
    subject      TEXT NOT NULL DEFAULT '',
    sender       TEXT NOT NULL DEFAULT '',
    recipients   TEXT NOT NULL DEFAULT '[]',
    body         TEXT NOT NULL DEFAULT '',
    received_at  TEXT NOT NULL,
    imported_at  TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

_CREATE_TICKETS = """
CREATE TABLE IF NOT EXISTS tickets (
    id           TEXT PRIMARY KEY,
    title        TEXT NOT NULL DEFAULT '',
    description  TEXT NOT NULL DEFAULT '',
    status       TEXT NOT NULL DEFAULT 'open',
    priority     TEXT NOT NULL DEFAULT 'medium',
    category     TEXT,
    created_at   TEXT NOT NULL,
    imported_at  TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

_CREATE_EMAILS_RECEIVED_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_emails_received_at ON emails (received_at)"
)

#: All DDL statements in creation order.
ALL_TABLES: list[str] = [
    _CREATE_EMAILS,
    _CREATE_TICKETS,
    _CREATE_EMAILS_RECEIVED_INDEX,
]


# ── Row conversion ─────────────────────────────────────────────────────────────


def _to_text(value: datetime) -> str:
    """UTC ISO-8601, so lexical order in SQLite is chronological order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_text(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def email_params(email: RawEmail) -> tuple:
    return (
        email.id,
        email.subject,
        email.sender,
        json.dumps(list(email.recipients)),
        email.body,
        _to_text(email.received_at),
    )


def ticket_params(ticket: RawTicket) -> tuple:
    return (
        ticket.id,
        ticket.title,
        ticket.description,
        ticket.status,
        ticket.priority,
        ticket.category,
        _to_text(ticket.created_at),
    )


def email_from_row(row: sqlite3.Row) -> RawEmail:
    try:
        recipients = json.loads(row["recipients"] or "[]")
    except json.JSONDecodeError:
        recipients = []
    return RawEmail(
        id=row["id"],
        subject=row["subject"],
        sender=row["sender"],
        received_at=_from_text(row["received_at"]),
        body=row["body"],
        recipients=tuple(str(r) for r in recipients) if isinstance(recipients, list) else (),
    )


def ticket_from_row(row: sqlite3.Row) -> RawTicket:
    return RawTicket(
        id=row["id"],
        title=row["title"],
        created_at=_from_text(row["created_at"]),
        description=row["description"],
        status=row["status"],
        priority=row["priority"],
        category=row["category"],
    )
