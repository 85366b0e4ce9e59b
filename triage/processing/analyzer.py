"""Email and ticket analysis: extraction plus derived heuristics."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from triage.extraction.extractor import ExtractionUnavailable, Extractor
from triage.extraction.normalizer import build_document, extract_features
from triage.extraction.types import Extraction
from triage.processing.fingerprint import fingerprint
from triage.processing.heuristics import categorize, suggest_priority, topic_score
from triage.processing.references import extract_references
from triage.processing.types import (
    AnalyzedEmail,
    AnalyzedTicket,
    Priority,
    RawEmail,
    RawTicket,
)

logger = logging.getLogger(__name__)

_In = TypeVar("_In", RawEmail, RawTicket)
_Out = TypeVar("_Out", AnalyzedEmail, AnalyzedTicket)


@dataclass
class BatchResult(Generic[_Out]):
    """Analysed items in input order, plus the ids that failed extraction."""

    analyzed: list[_Out] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _Derived:
    categories: frozenset[str]
    priority: Priority
    topic_score: float
    fingerprint: str


def _derive(subject: str, extraction: Extraction) -> _Derived:
    categories = categorize(extraction.entities, extraction.key_phrases)
    return _Derived(
        categories=categories,
        priority=suggest_priority(extraction.sentiment, categories, extraction.key_phrases),
        topic_score=topic_score(extraction.key_phrases, extraction.entities),
        fingerprint=fingerprint(subject, extraction.key_phrases, extraction.entities),
    )


class FeatureAnalyzer:
    """Turns raw emails and tickets into analysed, comparable feature sets.

    The extractor is injected so one backend instance (and its connection
    pool) serves every analysis in the process.

    Usage::

        analyzer = FeatureAnalyzer(extractor, batch_size=5)
        result = await analyzer.analyze_emails(raw_emails)
        result.analyzed, result.failed_ids
    """

    def __init__(
        self,
        extractor: Extractor,
        batch_size: int = 5,
        batch_pause: float = 0.1,
    ) -> None:
        self._extractor = extractor
        self._batch_size = max(1, batch_size)
        self._batch_pause = batch_pause

    # ── Single items ────────────────────────────────────────────────────────────

    async def analyze_email(self, email: RawEmail) -> AnalyzedEmail:
        """Analyse one email.

        Raises:
            ExtractionError: if the extractor fails for this email.
        """
        extraction = await extract_features(
            self._extractor, build_document(email.subject, email.body)
        )
        derived = _derive(email.subject, extraction)
        return AnalyzedEmail(
            id=email.id,
            subject=email.subject,
            sender=email.sender,
            received_at=email.received_at,
            recipients=email.recipients,
            entities=extraction.entities,
            key_phrases=extraction.key_phrases,
            sentiment=extraction.sentiment,
            topic_score=derived.topic_score,
            fingerprint=derived.fingerprint,
            categories=derived.categories,
            suggested_priority=derived.priority,
            references=extract_references(email.subject, email.body),
        )

    async def analyze_ticket(self, ticket: RawTicket) -> AnalyzedTicket:
        """Analyse one ticket from its title and description."""
        extraction = await extract_features(
            self._extractor, build_document(ticket.title, ticket.description)
        )
        derived = _derive(ticket.title, extraction)
        return AnalyzedTicket(
            id=ticket.id,
            title=ticket.title,
            description=ticket.description,
            status=ticket.status,
            priority=ticket.priority,
            category=ticket.category,
            created_at=ticket.created_at,
            entities=extraction.entities,
            key_phrases=extraction.key_phrases,
            sentiment=extraction.sentiment,
            topic_score=derived.topic_score,
            fingerprint=derived.fingerprint,
            categories=derived.categories,
            suggested_priority=derived.priority,
            references=extract_references(ticket.id, ticket.title, ticket.description),
        )

    # ── Batches ─────────────────────────────────────────────────────────────────

    async def analyze_emails(self, emails: Sequence[RawEmail]) -> BatchResult[AnalyzedEmail]:
        """Analyse emails with bounded concurrency; failed items are logged and skipped.

        Raises:
            ExtractionUnavailable: the backend is not configured at all.
        """
        return await self._run_batch("email", emails, self.analyze_email)

    async def analyze_tickets(self, tickets: Sequence[RawTicket]) -> BatchResult[AnalyzedTicket]:
        """Analyse tickets with bounded concurrency; failed items are logged and skipped."""
        return await self._run_batch("ticket", tickets, self.analyze_ticket)

    async def _run_batch(
        self,
        kind: str,
        items: Sequence[_In],
        analyze: Callable[[_In], Awaitable[_Out]],
    ) -> BatchResult[_Out]:
        """Gather items in chunks of batch_size, pausing between chunks.

        The pause is a rate-limit courtesy towards the extraction service.
        """
        result: BatchResult[_Out] = BatchResult()
        for start in range(0, len(items), self._batch_size):
            chunk = items[start : start + self._batch_size]
            outcomes = await asyncio.gather(
                *(analyze(item) for item in chunk), return_exceptions=True
            )
            for item, outcome in zip(chunk, outcomes):
                if isinstance(outcome, ExtractionUnavailable):
                    raise outcome
                if isinstance(outcome, Exception):
                    logger.error(
                        "Analysis failed for %s %s: %s",
                        kind,
                        item.id,
                        outcome,
                        exc_info=outcome,
                    )
                    result.failed_ids.append(item.id)
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    result.analyzed.append(outcome)

            logger.debug(
                "Analysed %s chunk %d-%d (%d failed so far)",
                kind,
                start,
                start + len(chunk),
                len(result.failed_ids),
            )
            if start + self._batch_size < len(items):
                await asyncio.sleep(self._batch_pause)

        logger.info(
            "Analysed %d/%d %s(s)", len(result.analyzed), len(items), kind
        )
        return result
