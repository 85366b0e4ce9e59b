"""Link-or-create recommendations from email <-> ticket matches."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from triage.matching.similarity import Similarity, confidence, email_ticket_similarity
from triage.processing.types import AnalyzedEmail, AnalyzedTicket

logger = logging.getLogger(__name__)

TicketSimilarityFn = Callable[[AnalyzedEmail, AnalyzedTicket], Similarity]

NO_MATCH_REASON = "No matching tickets."


class Recommendation(str, Enum):
    LINK = "link"
    CREATE = "create"


@dataclass(frozen=True)
class TicketMatch:
    """A candidate ticket for an email, with the basis of the match."""

    ticket: AnalyzedTicket
    score: float
    reasons: tuple[str, ...] = ()

    @property
    def confidence(self) -> str:
        return confidence(self.score)


@dataclass(frozen=True)
class MatchResult:
    """The routing decision for one email."""

    email: AnalyzedEmail
    recommendation: Recommendation
    recommendation_reason: str
    matching_tickets: list[TicketMatch] = field(default_factory=list)

    @property
    def linked_ticket_id(self) -> str | None:
        if self.recommendation is Recommendation.LINK and self.matching_tickets:
            return self.matching_tickets[0].ticket.id
        return None


def find_matching_tickets(
    email: AnalyzedEmail,
    tickets: Sequence[AnalyzedTicket],
    threshold: float,
    similarity: TicketSimilarityFn = email_ticket_similarity,
) -> list[TicketMatch]:
    """Tickets scoring at or above threshold, best first.

    Equal scores rank open tickets ahead of closed ones, then by ticket id.
    """
    matches: list[TicketMatch] = []
    for ticket in tickets:
        result = similarity(email, ticket)
        if result.score >= threshold:
            matches.append(TicketMatch(ticket=ticket, score=result.score, reasons=result.reasons))
    matches.sort(key=lambda m: (-m.score, not m.ticket.is_open, m.ticket.id))
    return matches


def _basis(match: TicketMatch) -> str:
    if not match.reasons:
        return "overall similarity"
    return ", ".join(reason[0].lower() + reason[1:] for reason in match.reasons)


def recommend(
    email: AnalyzedEmail,
    matches: Sequence[TicketMatch],
    ambiguity_margin: float,
) -> MatchResult:
    """Decide between linking to the best ticket and creating a new one.

    - no candidates: create.
    - a single candidate, or a top score clear of the runner-up by at least
      ambiguity_margin: link.
    - several close candidates: link to the best, and say so in the reason
      so a reviewer knows alternates exist.
    """
    ranked = list(matches)
    if not ranked:
        return MatchResult(
            email=email,
            recommendation=Recommendation.CREATE,
            recommendation_reason=NO_MATCH_REASON,
        )

    top = ranked[0]
    reason = (
        f'Link to ticket {top.ticket.id} "{top.ticket.title}" '
        f"({top.score:.0%} match): {_basis(top)}."
    )
    close = [m for m in ranked[1:] if top.score - m.score < ambiguity_margin]
    if close:
        alternates = ", ".join(m.ticket.id for m in close)
        reason += (
            f" Ambiguous: {len(close)} other ticket(s) scored within "
            f"{ambiguity_margin:.0%} ({alternates}); review before linking."
        )

    return MatchResult(
        email=email,
        recommendation=Recommendation.LINK,
        recommendation_reason=reason,
        matching_tickets=ranked,
    )


def cross_reference(
    emails: Sequence[AnalyzedEmail],
    tickets: Sequence[AnalyzedTicket],
    threshold: float,
    ambiguity_margin: float,
) -> list[MatchResult]:
    """Run find_matching_tickets + recommend for every email, in input order."""
    results = [
        recommend(email, find_matching_tickets(email, tickets, threshold), ambiguity_margin)
        for email in emails
    ]
    logger.info(
        "Cross-referenced %d email(s) against %d ticket(s): %d link, %d create",
        len(emails),
        len(tickets),
        sum(r.recommendation is Recommendation.LINK for r in results),
        sum(r.recommendation is Recommendation.CREATE for r in results),
    )
    return results
