"""Report types returned by TriageEngine, and their JSON-ready dict form."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from triage.matching.grouping import EmailGroup
from triage.matching.recommendation import NO_MATCH_REASON, MatchResult, Recommendation, TicketMatch
from triage.matching.similarity import Similarity
from triage.processing.types import AnalyzedEmail, AnalyzedTicket


@dataclass(frozen=True)
class TicketStats:
    total: int = 0
    open: int = 0
    closed: int = 0
    analyzed: int = 0


@dataclass(frozen=True)
class BatchStats:
    total_emails: int = 0
    total_tickets: int = 0
    total_groups: int = 0
    potential_duplicates: int = 0
    emails_with_duplicates: int = 0
    emails_to_link: int = 0
    emails_to_create: int = 0
    failed_emails: int = 0
    failed_tickets: int = 0


@dataclass
class BatchReport:
    """Result of TriageEngine.analyze_batch().

    ``groups`` holds only clusters of two or more emails; every analysed email
    (grouped or not) has an entry in ``email_analysis``.
    """

    groups: list[EmailGroup] = field(default_factory=list)
    email_analysis: list[MatchResult] = field(default_factory=list)
    ticket_stats: TicketStats = field(default_factory=TicketStats)
    stats: BatchStats = field(default_factory=BatchStats)
    message: str | None = None

    def match_for(self, email_id: str) -> MatchResult | None:
        return next((m for m in self.email_analysis if m.email.id == email_id), None)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "groups": [self._group_dict(g) for g in self.groups],
            "email_analysis": [match_result_dict(m) for m in self.email_analysis],
            "ticket_stats": vars(self.ticket_stats).copy(),
            "stats": vars(self.stats).copy(),
        }
        if self.message:
            data["message"] = self.message
        return data

    def _group_dict(self, group: EmailGroup) -> dict[str, Any]:
        """Group plus the primary email's ticket matches and recommendation."""
        match = self.match_for(group.primary_email.id)
        data = group_dict(group)
        data["matching_tickets"] = (
            [ticket_match_dict(t) for t in match.matching_tickets] if match else []
        )
        data["recommendation"] = (
            match.recommendation.value if match else Recommendation.CREATE.value
        )
        data["recommendation_reason"] = match.recommendation_reason if match else NO_MATCH_REASON
        return data


@dataclass
class SingleReport:
    """Result of TriageEngine.analyze_single()."""

    analyzed_email: AnalyzedEmail
    potential_duplicates: list[tuple[AnalyzedEmail, Similarity]] = field(default_factory=list)
    related_tickets: list[TicketMatch] = field(default_factory=list)
    recommendation: MatchResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": email_dict(self.analyzed_email),
            "potential_duplicates": [
                {
                    "email": email_summary_dict(email),
                    "similarity": similarity.score,
                    "reasons": list(similarity.reasons),
                }
                for email, similarity in self.potential_duplicates
            ],
            "related_tickets": [ticket_match_dict(t) for t in self.related_tickets],
            "recommendation": (
                self.recommendation.recommendation.value if self.recommendation else None
            ),
            "recommendation_reason": (
                self.recommendation.recommendation_reason if self.recommendation else None
            ),
        }


# ── Serialisers ────────────────────────────────────────────────────────────────


def _iso(value: datetime) -> str:
    return value.isoformat()


def email_summary_dict(email: AnalyzedEmail) -> dict[str, Any]:
    return {
        "id": email.id,
        "subject": email.subject,
        "sender": email.sender,
        "received_at": _iso(email.received_at),
    }


def email_dict(email: AnalyzedEmail) -> dict[str, Any]:
    return {
        **email_summary_dict(email),
        "recipients": list(email.recipients),
        "entities": [
            {"text": e.text, "type": e.type, "score": e.score} for e in email.entities
        ],
        "key_phrases": [{"text": p.text, "score": p.score} for p in email.key_phrases],
        "sentiment": {
            "label": email.sentiment.label.value,
            "scores": vars(email.sentiment.scores).copy(),
        },
        "topic_score": email.topic_score,
        "fingerprint": email.fingerprint,
        "categories": sorted(email.categories),
        "references": sorted(email.references),
        "suggested_priority": email.suggested_priority.value,
    }


def ticket_dict(ticket: AnalyzedTicket) -> dict[str, Any]:
    return {
        "id": ticket.id,
        "title": ticket.title,
        "status": ticket.status,
        "priority": ticket.priority,
        "category": ticket.category,
        "created_at": _iso(ticket.created_at),
        "is_open": ticket.is_open,
        "categories": sorted(ticket.categories),
        "references": sorted(ticket.references),
    }


def ticket_match_dict(match: TicketMatch) -> dict[str, Any]:
    return {
        "ticket": ticket_dict(match.ticket),
        "score": match.score,
        "confidence": match.confidence,
        "reasons": list(match.reasons),
    }


def match_result_dict(result: MatchResult) -> dict[str, Any]:
    return {
        "email": email_dict(result.email),
        "matching_tickets": [ticket_match_dict(t) for t in result.matching_tickets],
        "recommendation": result.recommendation.value,
        "recommendation_reason": result.recommendation_reason,
        "linked_ticket_id": result.linked_ticket_id,
    }


def group_dict(group: EmailGroup) -> dict[str, Any]:
    return {
        "id": group.id,
        "primary_email": email_dict(group.primary_email),
        "related_emails": [
            {
                "email": email_summary_dict(r.email),
                "similarity": r.similarity.score,
                "reasons": list(r.similarity.reasons),
            }
            for r in group.related_emails
        ],
        "suggested_ticket_title": group.suggested_ticket_title,
        "suggested_category": group.suggested_category,
        "suggested_priority": group.suggested_priority.value,
        "common_phrases": list(group.common_phrases),
        "participants": list(group.participants),
        "date_range": (
            {"earliest": _iso(group.date_range[0]), "latest": _iso(group.date_range[1])}
            if group.date_range
            else None
        ),
    }
