"""Keyword categoriser, priority decision list, and topic score."""

from collections.abc import Collection, Sequence

from triage.extraction.types import Entity, KeyPhrase, SentimentLabel, SentimentResult
from triage.processing.types import Category, Priority

#: Substring keywords per category, matched against lowercased phrase/entity text.
CATEGORY_KEYWORDS: dict[Category, tuple[str, ...]] = {
    Category.BUG: ("bug", "error", "issue", "crash", "broken", "fix", "defect", "problem"),
    Category.FEATURE: ("feature", "enhancement", "request", "add", "new", "implement"),
    Category.SUPPORT: ("help", "support", "question", "how to", "assistance", "guide"),
    Category.URGENT: ("urgent", "asap", "critical", "emergency", "immediately", "priority"),
    Category.BILLING: ("invoice", "payment", "billing", "charge", "refund", "subscription"),
    Category.FEEDBACK: ("feedback", "suggestion", "review", "opinion", "thoughts"),
    Category.MEETING: ("meeting", "call", "schedule", "appointment", "discuss"),
}

_STRONG_NEGATIVE = 0.7
_MANY_PHRASES = 10


def categorize(entities: Sequence[Entity], key_phrases: Sequence[KeyPhrase]) -> frozenset[str]:
    """Return every category whose keywords appear in the extracted text."""
    text = " ".join(
        [p.text.lower() for p in key_phrases] + [e.text.lower() for e in entities]
    )
    return frozenset(
        category.value
        for category, keywords in CATEGORY_KEYWORDS.items()
        if any(keyword in text for keyword in keywords)
    )


def suggest_priority(
    sentiment: SentimentResult,
    categories: Collection[str],
    key_phrases: Sequence[KeyPhrase],
) -> Priority:
    """Ordered decision list; the first matching rule wins.

    Reordering the rules changes outcomes (an urgent negative bug report must
    come out urgent, not high).
    """
    negative = sentiment.label == SentimentLabel.NEGATIVE

    if Category.URGENT.value in categories:
        return Priority.URGENT
    if negative and Category.BUG.value in categories:
        return Priority.HIGH
    if Category.BUG.value in categories:
        return Priority.MEDIUM
    if negative and sentiment.scores.negative > _STRONG_NEGATIVE:
        return Priority.HIGH
    if Category.FEATURE.value in categories:
        return Priority.MEDIUM
    if len(key_phrases) > _MANY_PHRASES:
        return Priority.MEDIUM
    return Priority.LOW


def topic_score(key_phrases: Sequence[KeyPhrase], entities: Sequence[Entity]) -> float:
    """Average confidence plus a quantity bonus of up to 0.2, capped at 1."""
    scores = [p.score for p in key_phrases] + [e.score for e in entities]
    if not scores:
        return 0.0
    average = sum(scores) / len(scores)
    return min(1.0, average + min(0.2, len(scores) / 20))
