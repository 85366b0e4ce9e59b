"""Types for the email/ticket analysis pipeline."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from triage.extraction.types import NEUTRAL_SENTIMENT, Entity, KeyPhrase, SentimentResult


class Priority(str, Enum):
    """Suggested handling priority, from least to most pressing."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_RANK: dict[Priority, int] = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}


class Category(str, Enum):
    """Category tags assigned from extracted features."""

    BUG = "bug"
    FEATURE = "feature"
    SUPPORT = "support"
    URGENT = "urgent"
    BILLING = "billing"
    FEEDBACK = "feedback"
    MEETING = "meeting"


#: Ticket statuses that count as active work.
OPEN_STATUSES = frozenset({"open", "in-progress", "pending", "new"})


def to_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Raw inputs ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RawEmail:
    """An email snapshot from sync or archive import, before analysis."""

    id: str
    subject: str
    sender: str
    received_at: datetime
    body: str = ""
    recipients: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "received_at", to_utc(self.received_at))


@dataclass(frozen=True)
class RawTicket:
    """An existing support ticket, before analysis."""

    id: str
    title: str
    created_at: datetime
    description: str = ""
    status: str = "open"
    priority: str = "medium"
    category: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "created_at", to_utc(self.created_at))


# ── Analysis results ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AnalyzedEmail:
    """Features derived once from a RawEmail.

    Produced by FeatureAnalyzer.analyze_email() and consumed by:
      - the grouping engine      (email <-> email similarity)
      - the recommendation engine (email <-> ticket similarity)
    """

    id: str
    subject: str
    sender: str
    received_at: datetime
    recipients: tuple[str, ...] = ()
    entities: tuple[Entity, ...] = ()
    key_phrases: tuple[KeyPhrase, ...] = ()
    sentiment: SentimentResult = field(default=NEUTRAL_SENTIMENT)
    topic_score: float = 0.0
    fingerprint: str = ""
    categories: frozenset[str] = frozenset()
    suggested_priority: Priority = Priority.LOW
    references: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "received_at", to_utc(self.received_at))


@dataclass(frozen=True)
class AnalyzedTicket:
    """Features derived from a RawTicket's title and description."""

    id: str
    title: str
    description: str
    status: str
    priority: str
    category: str | None
    created_at: datetime
    entities: tuple[Entity, ...] = ()
    key_phrases: tuple[KeyPhrase, ...] = ()
    sentiment: SentimentResult = field(default=NEUTRAL_SENTIMENT)
    topic_score: float = 0.0
    fingerprint: str = ""
    categories: frozenset[str] = frozenset()
    suggested_priority: Priority = Priority.LOW
    references: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "created_at", to_utc(self.created_at))

    @property
    def is_open(self) -> bool:
        return self.status.strip().lower() in OPEN_STATUSES
