"""TriageEngine: analysis, grouping and ticket recommendation in one pass."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import TypeVar

from triage.matching.grouping import ClusteringStrategy, group_emails
from triage.matching.recommendation import cross_reference, find_matching_tickets, recommend
from triage.matching.similarity import email_similarity
from triage.pipeline.config import TriageConfig
from triage.pipeline.report import BatchReport, BatchStats, SingleReport, TicketStats
from triage.processing.analyzer import FeatureAnalyzer
from triage.processing.types import OPEN_STATUSES, RawEmail, RawTicket

logger = logging.getLogger(__name__)

_T = TypeVar("_T", RawEmail, RawTicket)

EMPTY_BATCH_MESSAGE = "No emails or tickets to analyze."


def cap_newest(
    kind: str,
    items: Sequence[_T],
    limit: int,
    timestamp: Callable[[_T], datetime],
) -> list[_T]:
    """Keep the `limit` most recent items, preserving their input order."""
    if len(items) <= limit:
        return list(items)
    newest = sorted(items, key=timestamp, reverse=True)[:limit]
    keep = {id(item) for item in newest}
    logger.warning(
        "Received %d %s(s); analysing only the %d most recent", len(items), kind, limit
    )
    return [item for item in items if id(item) in keep]


class TriageEngine:
    """Entry point for the calling layer.

    Usage::

        analyzer = FeatureAnalyzer(extractor, batch_size=config.batch_size)
        engine = TriageEngine(analyzer, config)
        report = await engine.analyze_batch(emails, tickets)
    """

    def __init__(
        self,
        analyzer: FeatureAnalyzer,
        config: TriageConfig | None = None,
        strategy: ClusteringStrategy | None = None,
    ) -> None:
        self._analyzer = analyzer
        self._config = config or TriageConfig()
        self._strategy = strategy

    async def analyze_batch(
        self,
        emails: Sequence[RawEmail],
        tickets: Sequence[RawTicket] = (),
    ) -> BatchReport:
        """Analyse, group and cross-reference a batch.

        Raises:
            ExtractionUnavailable: the extraction backend is not configured.
        """
        cfg = self._config
        if not emails and not tickets:
            return BatchReport(message=EMPTY_BATCH_MESSAGE)

        emails = cap_newest("email", emails, cfg.max_batch, lambda e: e.received_at)
        tickets = cap_newest("ticket", tickets, cfg.max_batch, lambda t: t.created_at)

        email_result = await self._analyzer.analyze_emails(emails)
        ticket_result = await self._analyzer.analyze_tickets(tickets)
        analyzed_emails = email_result.analyzed
        analyzed_tickets = ticket_result.analyzed

        groups = group_emails(
            analyzed_emails, cfg.duplicate_threshold, strategy=self._strategy
        )
        matches = cross_reference(
            analyzed_emails, analyzed_tickets, cfg.match_threshold, cfg.ambiguity_margin
        )

        open_count = sum(t.status.strip().lower() in OPEN_STATUSES for t in tickets)
        ticket_stats = TicketStats(
            total=len(tickets),
            open=open_count,
            closed=len(tickets) - open_count,
            analyzed=len(analyzed_tickets),
        )
        link_count = sum(m.linked_ticket_id is not None for m in matches)
        stats = BatchStats(
            total_emails=len(emails),
            total_tickets=len(tickets),
            total_groups=len(groups),
            potential_duplicates=sum(len(g.related_emails) for g in groups),
            emails_with_duplicates=sum(len(g.members) for g in groups),
            emails_to_link=link_count,
            emails_to_create=len(matches) - link_count,
            failed_emails=len(email_result.failed_ids),
            failed_tickets=len(ticket_result.failed_ids),
        )
        logger.info(
            "Batch done: %d email(s), %d ticket(s), %d group(s), %d link, %d create, %d failed",
            stats.total_emails,
            stats.total_tickets,
            stats.total_groups,
            stats.emails_to_link,
            stats.emails_to_create,
            stats.failed_emails + stats.failed_tickets,
        )
        return BatchReport(
            groups=groups,
            email_analysis=matches,
            ticket_stats=ticket_stats,
            stats=stats,
        )

    async def analyze_single(
        self,
        email: RawEmail,
        corpus: Sequence[RawEmail] = (),
        tickets: Sequence[RawTicket] = (),
    ) -> SingleReport:
        """Analyse one email against the rest of the corpus and the tickets.

        Raises:
            ExtractionError: extraction of ``email`` itself failed.
        """
        cfg = self._config
        analyzed = await self._analyzer.analyze_email(email)

        others = cap_newest(
            "email",
            [e for e in corpus if e.id != email.id],
            cfg.max_batch,
            lambda e: e.received_at,
        )
        tickets = cap_newest("ticket", tickets, cfg.max_batch, lambda t: t.created_at)
        corpus_result = await self._analyzer.analyze_emails(others)
        ticket_result = await self._analyzer.analyze_tickets(tickets)

        duplicates = []
        for other in corpus_result.analyzed:
            similarity = email_similarity(analyzed, other)
            if similarity.score >= cfg.duplicate_threshold:
                duplicates.append((other, similarity))
        duplicates.sort(key=lambda pair: (-pair[1].score, pair[0].received_at, pair[0].id))

        related = find_matching_tickets(analyzed, ticket_result.analyzed, cfg.match_threshold)
        match = recommend(analyzed, related, cfg.ambiguity_margin)
        logger.info(
            "Email %s: %d potential duplicate(s), %d related ticket(s), %s",
            email.id,
            len(duplicates),
            len(related),
            match.recommendation.value,
        )
        return SingleReport(
            analyzed_email=analyzed,
            potential_duplicates=duplicates,
            related_tickets=related,
            recommendation=match,
        )
