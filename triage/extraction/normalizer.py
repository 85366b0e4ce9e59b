"""Text preparation for extraction backends and mapping of their raw output."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from html.parser import HTMLParser
from typing import TYPE_CHECKING, Any

from triage.extraction.types import (
    EMPTY_EXTRACTION,
    Entity,
    Extraction,
    KeyPhrase,
    SentimentLabel,
    SentimentResult,
    SentimentScores,
)

if TYPE_CHECKING:
    from triage.extraction.extractor import Extractor

logger = logging.getLogger(__name__)

# Comprehend rejects documents over 5000 bytes; keep a little headroom.
MAX_TEXT_BYTES = 4_900


# ── HTML stripper ───────────────────────────────────────────────────────────────


class _HTMLStripper(HTMLParser):
    """Minimal HTMLParser subclass that collects visible text nodes."""

    def __init__(self) -> None:
        super().__init__()
        self._parts: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in ("script", "style"):
            self._skip_depth += 1

    def handle_endtag(self, tag: str) -> None:
        if tag in ("script", "style") and self._skip_depth:
            self._skip_depth -= 1

    def handle_data(self, data: str) -> None:
        if self._skip_depth:
            return
        text = data.strip()
        if text:
            self._parts.append(text)

    def get_text(self) -> str:
        return " ".join(self._parts)


def strip_html(text: str) -> str:
    """Return plain text from an HTML string.

    If the input doesn't look like HTML, or stripping produces nothing useful,
    the original string is returned unchanged.
    """
    if "<" not in text:
        return text
    stripper = _HTMLStripper()
    try:
        stripper.feed(text)
        stripper.close()
        result = stripper.get_text()
        # Stripping away >90% of the content means the input was not really HTML.
        return result if len(result) > len(text) * 0.1 else text
    except Exception:  # noqa: BLE001
        return text


# ── Text preparation ────────────────────────────────────────────────────────────


def build_document(subject: str, body: str) -> str:
    """Join subject and body into the single text blob sent for extraction."""
    return f"{subject or ''}\n\n{strip_html(body or '')}"


def truncate_utf8(text: str, max_bytes: int = MAX_TEXT_BYTES) -> str:
    """Return the longest prefix of text whose UTF-8 encoding fits in max_bytes.

    Binary search over character counts, so a multi-byte character is never
    split in half.
    """
    if len(text.encode("utf-8")) <= max_bytes:
        return text

    low, high = 0, len(text)
    while low < high:
        mid = (low + high + 1) // 2
        if len(text[:mid].encode("utf-8")) <= max_bytes:
            low = mid
        else:
            high = mid - 1
    return text[:low]


async def extract_features(extractor: Extractor, text: str) -> Extraction:
    """Truncate text and run it through extractor.

    Blank text never reaches the backend: it yields no entities, no phrases
    and a NEUTRAL sentiment.
    """
    truncated = truncate_utf8(text)
    if not truncated.strip():
        return EMPTY_EXTRACTION
    return await extractor.extract(truncated)


# ── Provider output mapping ─────────────────────────────────────────────────────


def _clamp(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return min(1.0, max(0.0, number))


def _get(item: Mapping[str, Any], *keys: str) -> Any:
    """Return the first present key; backends disagree on casing (Text vs text)."""
    for key in keys:
        if key in item and item[key] is not None:
            return item[key]
    return None


def map_entities(raw: Iterable[Mapping[str, Any]] | None) -> tuple[Entity, ...]:
    """Convert backend entity dicts to Entity values, dropping incomplete items."""
    entities: list[Entity] = []
    for item in raw or ():
        text = _get(item, "Text", "text")
        etype = _get(item, "Type", "type")
        score = _get(item, "Score", "score")
        if not text or not etype or score is None:
            continue
        entities.append(Entity(text=str(text), type=str(etype).upper(), score=_clamp(score)))
    return tuple(entities)


def map_key_phrases(raw: Iterable[Mapping[str, Any]] | None) -> tuple[KeyPhrase, ...]:
    """Convert backend key-phrase dicts to KeyPhrase values, dropping incomplete items."""
    phrases: list[KeyPhrase] = []
    for item in raw or ():
        text = _get(item, "Text", "text")
        score = _get(item, "Score", "score")
        if not text or score is None:
            continue
        phrases.append(KeyPhrase(text=str(text), score=_clamp(score)))
    return tuple(phrases)


def map_sentiment(label: Any, scores: Mapping[str, Any] | None) -> SentimentResult:
    """Convert a backend sentiment label + score dict to a SentimentResult.

    Unknown labels fall back to NEUTRAL; missing scores default to 0.
    """
    try:
        sentiment = SentimentLabel(str(label).upper())
    except ValueError:
        logger.debug("Unknown sentiment label %r; using NEUTRAL", label)
        sentiment = SentimentLabel.NEUTRAL
    scores = scores or {}
    return SentimentResult(
        label=sentiment,
        scores=SentimentScores(
            positive=_clamp(_get(scores, "Positive", "positive")),
            negative=_clamp(_get(scores, "Negative", "negative")),
            neutral=_clamp(_get(scores, "Neutral", "neutral")),
            mixed=_clamp(_get(scores, "Mixed", "mixed")),
        ),
    )
