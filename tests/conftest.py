"""Shared pytest fixtures."""

import asyncio
from collections.abc import Callable, Mapping
from datetime import datetime, timezone

import pytest

from triage.extraction.extractor import ExtractionError, ExtractionUnavailable
from triage.extraction.types import (
    EMPTY_EXTRACTION,
    Entity,
    Extraction,
    KeyPhrase,
    SentimentLabel,
    SentimentResult,
    SentimentScores,
)


class FakeExtractor:
    """Extractor stand-in keyed by the first line of the document (subject or title)."""

    def __init__(
        self,
        responses: Mapping[str, Extraction] | None = None,
        fail_on: set[str] | None = None,
        unavailable: bool = False,
    ) -> None:
        self.responses = dict(responses or {})
        self.fail_on = fail_on or set()
        self.unavailable = unavailable
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def extract(self, text: str) -> Extraction:
        self.calls.append(text)
        if self.unavailable:
            raise ExtractionUnavailable("no credentials")
        key = text.split("\n\n", 1)[0]
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if key in self.fail_on:
                raise ExtractionError(f"backend failed for {key!r}")
            return self.responses.get(key, EMPTY_EXTRACTION)
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


def extraction(
    phrases: Mapping[str, float] | None = None,
    entities: list[tuple[str, str, float]] | None = None,
    sentiment: str = "NEUTRAL",
    negative: float = 0.0,
) -> Extraction:
    """Compact Extraction builder: phrases {text: score}, entities [(text, type, score)]."""
    label = SentimentLabel(sentiment)
    scores = SentimentScores(
        positive=0.9 if label is SentimentLabel.POSITIVE else 0.0,
        negative=negative,
        neutral=1.0 - negative if label is SentimentLabel.NEUTRAL else 0.0,
    )
    return Extraction(
        entities=tuple(Entity(text=t, type=k, score=s) for t, k, s in entities or []),
        key_phrases=tuple(KeyPhrase(text=t, score=s) for t, s in (phrases or {}).items()),
        sentiment=SentimentResult(label=label, scores=scores),
    )


@pytest.fixture
def fake_extractor() -> Callable[..., FakeExtractor]:
    """Factory for FakeExtractor instances."""
    return FakeExtractor


@pytest.fixture
def make_extraction() -> Callable[..., Extraction]:
    return extraction


@pytest.fixture
def t0() -> datetime:
    return datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
