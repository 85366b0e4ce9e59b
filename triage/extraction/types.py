"""Canonical feature shapes produced by every extraction backend."""

from dataclasses import dataclass, field
from enum import Enum


class SentimentLabel(str, Enum):
    """Overall sentiment of a text blob."""

    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"
    MIXED = "MIXED"


@dataclass(frozen=True)
class Entity:
    """A named item (person, organisation, ...) found in the text."""

    text: str
    type: str
    score: float


@dataclass(frozen=True)
class KeyPhrase:
    """A salient noun phrase with the backend's confidence."""

    text: str
    score: float


@dataclass(frozen=True)
class SentimentScores:
    """Four-way score distribution.  Each value is in [0, 1]; the sum may drift from 1."""

    positive: float = 0.0
    negative: float = 0.0
    neutral: float = 0.0
    mixed: float = 0.0


@dataclass(frozen=True)
class SentimentResult:
    label: SentimentLabel
    scores: SentimentScores


#: Returned for blank text without calling any backend.
NEUTRAL_SENTIMENT = SentimentResult(
    label=SentimentLabel.NEUTRAL,
    scores=SentimentScores(positive=0.0, negative=0.0, neutral=1.0, mixed=0.0),
)


@dataclass(frozen=True)
class Extraction:
    """Everything a backend returns for one text blob.

    Produced by Extractor.extract() and consumed by the processing layer
    (categoriser, priority heuristic, topic score, fingerprint).
    """

    entities: tuple[Entity, ...] = ()
    key_phrases: tuple[KeyPhrase, ...] = ()
    sentiment: SentimentResult = field(default=NEUTRAL_SENTIMENT)


EMPTY_EXTRACTION = Extraction()
