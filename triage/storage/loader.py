"""JSON export loader. Turns client-supplied records into RawEmail / RawTicket."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dateutil import parser as date_parser

from triage.processing.types import RawEmail, RawTicket, to_utc
from triage.storage.db import CorpusUnavailable

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class RecordError(ValueError):
    """A record is missing a required field and cannot be used."""


@dataclass
class RecordSet:
    emails: list[RawEmail] = field(default_factory=list)
    tickets: list[RawTicket] = field(default_factory=list)
    skipped: int = 0


# ── Field helpers ──────────────────────────────────────────────────────────────


def parse_timestamp(value: Any) -> datetime:
    """Aware UTC datetime from an ISO string or datetime; epoch when unusable.

    Naive values are taken to be UTC.
    """
    if isinstance(value, datetime):
        dt = value
    elif value in (None, ""):
        return EPOCH
    else:
        try:
            dt = date_parser.parse(str(value))
        except (ValueError, TypeError, OverflowError):
            logger.warning("Unparsable timestamp %r; using epoch", value)
            return EPOCH
    return to_utc(dt)


def _address(value: Any) -> str:
    """Address from a plain string or a Graph-style {"emailAddress": {"address": ...}}."""
    if isinstance(value, dict):
        inner = value.get("emailAddress", value)
        if isinstance(inner, dict):
            return str(inner.get("address") or inner.get("name") or "")
        return ""
    return str(value) if value is not None else ""


def parse_recipients(value: Any) -> tuple[str, ...]:
    """Recipient list from a list, or a JSON-encoded list string; () when malformed."""
    if isinstance(value, str):
        if not value.strip():
            return ()
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Malformed recipient list %r; using []", value[:80])
            return ()
    if not isinstance(value, list):
        return ()
    return tuple(a for a in (_address(v) for v in value) if a)


def _first(record: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        if record.get(key) not in (None, ""):
            return record[key]
    return default


def _require_id(record: Any, kind: str) -> str:
    if not isinstance(record, dict):
        raise RecordError(f"{kind} record is not an object: {record!r:.80}")
    record_id = record.get("id")
    if record_id in (None, ""):
        raise RecordError(f"{kind} record has no id: {record!r:.80}")
    return str(record_id)


# ── Record conversion ──────────────────────────────────────────────────────────


def email_from_record(record: Any) -> RawEmail:
    """Build a RawEmail from an export record.

    Raises:
        RecordError: the record has no id.
    """
    email_id = _require_id(record, "email")
    return RawEmail(
        id=email_id,
        subject=str(_first(record, "subject", default="")),
        sender=_address(_first(record, "fromEmail", "sender", "from", default="")),
        received_at=parse_timestamp(_first(record, "receivedAt", "received_at", "sentAt")),
        body=str(_first(record, "body", "bodyPreview", default="")),
        recipients=parse_recipients(_first(record, "toEmails", "recipients", "to", default=[])),
    )


def ticket_from_record(record: Any) -> RawTicket:
    """Build a RawTicket from an export record.

    Raises:
        RecordError: the record has no id.
    """
    ticket_id = _require_id(record, "ticket")
    category = _first(record, "category")
    return RawTicket(
        id=ticket_id,
        title=str(_first(record, "title", "subject", default="")),
        created_at=parse_timestamp(_first(record, "createdAt", "created_at")),
        description=str(_first(record, "description", default="")),
        status=str(_first(record, "status", default="open")).strip().lower(),
        priority=str(_first(record, "priority", default="medium")).strip().lower(),
        category=str(category).strip().lower() if category is not None else None,
    )


# ── Loader ─────────────────────────────────────────────────────────────────────


def load_records(path: str | Path) -> RecordSet:
    """Read emails and tickets from a JSON export.

    Accepts ``{"emails": [...], "tickets": [...]}`` or a bare array of
    emails.  Records without an id are logged and skipped.

    Raises:
        CorpusUnavailable: the file is missing or not valid JSON.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CorpusUnavailable(f"Cannot read records from {path}: {exc}") from exc

    if isinstance(data, list):
        raw_emails, raw_tickets = data, []
    elif isinstance(data, dict):
        raw_emails = data.get("emails") or []
        raw_tickets = data.get("tickets") or []
    else:
        raise CorpusUnavailable(f"Unexpected top-level JSON in {path}: {type(data).__name__}")

    records = RecordSet()
    for raw in raw_emails:
        try:
            records.emails.append(email_from_record(raw))
        except RecordError as exc:
            logger.warning("Skipping email: %s", exc)
            records.skipped += 1
    for raw in raw_tickets:
        try:
            records.tickets.append(ticket_from_record(raw))
        except RecordError as exc:
            logger.warning("Skipping ticket: %s", exc)
            records.skipped += 1

    logger.info(
        "Loaded %d email(s) and %d ticket(s) from %s (%d skipped)",
        len(records.emails),
        len(records.tickets),
        path,
        records.skipped,
    )
    return records
