"""Weighted-overlap similarity between emails, and between emails and tickets."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from triage.extraction.types import KeyPhrase
from triage.processing.types import AnalyzedEmail, AnalyzedTicket

_TOKEN = re.compile(r"[a-z0-9]+")
_REPLY_MARKERS = re.compile(r"^\s*((re|fwd?|aw|sv)\s*:\s*)+", re.IGNORECASE)

STOP_WORDS = frozenset(
    {
        "the", "and", "for", "with", "from", "was", "are", "were", "been",
        "have", "has", "had", "does", "did", "will", "would", "could", "should",
        "may", "might", "must", "shall", "can", "need", "this", "that", "these",
        "those", "you", "she", "they", "what", "which", "who", "when", "where",
        "why", "how", "all", "each", "every", "both", "few", "more", "most",
        "other", "some", "such", "not", "only", "same", "than", "too", "very",
        "just", "also", "now", "here", "there", "our", "your", "his", "her",
        "its", "their", "then", "because", "while", "although", "however",
        "please", "thanks", "thank", "regards", "hello", "dear", "best",
        "sincerely",
    }
)

# Email <-> email weights. Subject, sender, phrase, category and recency sum to 1.
# Sender domain only counts when the addresses differ. A shared reference is
# added on top and the total is capped at 1.
SUBJECT_WEIGHT = 0.30
SENDER_WEIGHT = 0.20
SENDER_DOMAIN_WEIGHT = 0.10
PHRASE_WEIGHT = 0.20
CATEGORY_WEIGHT = 0.15
RECENCY_WEIGHT = 0.15
RECENCY_WINDOW_DAYS = 7.0
REFERENCE_WEIGHT = 0.40

# Email <-> ticket weights. Category and open status are context shares, scaled
# by how much content the pair has in common (full weight at CONTEXT_SATURATION).
TICKET_REFERENCE_WEIGHT = 0.50
TICKET_CATEGORY_WEIGHT = 0.30
TICKET_TITLE_WEIGHT = 0.30
TICKET_PHRASE_WEIGHT = 0.25
TICKET_OPEN_WEIGHT = 0.15
TICKET_SENDER_WEIGHT = 0.15
CONTEXT_SATURATION = 0.20


@dataclass(frozen=True)
class Similarity:
    """A score in [0, 1] and the signals that produced it."""

    score: float
    reasons: tuple[str, ...] = ()


# ── Token helpers ───────────────────────────────────────────────────────────────


def tokens(text: str) -> frozenset[str]:
    """Lowercase alphanumeric words longer than two characters, minus stop words."""
    return frozenset(
        word
        for word in _TOKEN.findall((text or "").lower())
        if len(word) > 2 and word not in STOP_WORDS
    )


def strip_reply_markers(subject: str) -> str:
    """Remove every leading Re:/Fwd: marker, keeping the original casing."""
    return _REPLY_MARKERS.sub("", subject or "").strip()


def subject_tokens(subject: str) -> frozenset[str]:
    return tokens(strip_reply_markers(subject))


def phrase_tokens(key_phrases: Iterable[KeyPhrase]) -> frozenset[str]:
    words: set[str] = set()
    for phrase in key_phrases:
        words |= tokens(phrase.text)
    return frozenset(words)


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    left, right = set(a), set(b)
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def confidence(score: float) -> str:
    """Bucket a similarity score for display."""
    if score >= 0.7:
        return "high"
    if score >= 0.45:
        return "medium"
    return "low"


def _address(sender: str) -> str:
    """Bare lowercase address from 'Name <addr>' or 'addr'."""
    match = re.search(r"<([^>]+)>", sender or "")
    return (match.group(1) if match else sender or "").strip().lower()


def _domain(address: str) -> str:
    return address.rpartition("@")[2] if "@" in address else ""


# ── Email <-> email ─────────────────────────────────────────────────────────────


def email_similarity(a: AnalyzedEmail, b: AnalyzedEmail) -> Similarity:
    """Symmetric similarity used for duplicate grouping.

    Identical fingerprints short-circuit to 1.0; otherwise subject, sender,
    key-phrase, category and time-proximity signals are blended, and a shared
    order or ticket reference adds REFERENCE_WEIGHT on top.
    """
    if a.fingerprint and a.fingerprint == b.fingerprint:
        return Similarity(1.0, ("Identical content fingerprint",))

    reasons: list[str] = []
    score = 0.0

    subject_overlap = jaccard(subject_tokens(a.subject), subject_tokens(b.subject))
    if subject_overlap > 0:
        score += SUBJECT_WEIGHT * subject_overlap
        reasons.append(f"{subject_overlap:.0%} subject overlap")

    sender_a, sender_b = _address(a.sender), _address(b.sender)
    if sender_a and sender_a == sender_b:
        score += SENDER_WEIGHT
        reasons.append("Same sender")
    elif _domain(sender_a) and _domain(sender_a) == _domain(sender_b):
        score += SENDER_DOMAIN_WEIGHT
        reasons.append("Same sender domain")

    shared_refs = a.references & b.references
    if shared_refs:
        score += REFERENCE_WEIGHT
        reasons.append(f"Same reference: {', '.join(sorted(shared_refs))}")

    phrase_overlap = jaccard(phrase_tokens(a.key_phrases), phrase_tokens(b.key_phrases))
    if phrase_overlap > 0:
        score += PHRASE_WEIGHT * phrase_overlap
        reasons.append(f"{phrase_overlap:.0%} key phrase overlap")

    category_overlap = jaccard(a.categories, b.categories)
    if category_overlap > 0:
        score += CATEGORY_WEIGHT * category_overlap
        shared = ", ".join(sorted(a.categories & b.categories))
        reasons.append(f"Shared categories: {shared}")

    days_apart = abs((a.received_at - b.received_at).total_seconds()) / 86_400
    recency = max(0.0, 1.0 - days_apart / RECENCY_WINDOW_DAYS)
    if recency > 0:
        score += RECENCY_WEIGHT * recency
        reasons.append(f"Within {days_apart:.1f} days")

    return Similarity(round(min(score, 1.0), 6), tuple(reasons))


# ── Email <-> ticket ────────────────────────────────────────────────────────────


def _content_signals(email: AnalyzedEmail, ticket: AnalyzedTicket) -> tuple[float, list[str]]:
    """Score from what the email and the ticket actually say."""
    reasons: list[str] = []
    score = 0.0

    shared_refs = email.references & ticket.references
    if shared_refs:
        score += TICKET_REFERENCE_WEIGHT
        reasons.append(f"Matching reference: {', '.join(sorted(shared_refs))}")

    title_overlap = jaccard(subject_tokens(email.subject), tokens(ticket.title))
    if title_overlap > 0:
        score += TICKET_TITLE_WEIGHT * title_overlap
        reasons.append(f"{title_overlap:.0%} subject/title overlap")

    email_words = phrase_tokens(email.key_phrases)
    if email_words:
        ticket_words = (
            tokens(ticket.title) | tokens(ticket.description) | phrase_tokens(ticket.key_phrases)
        )
        coverage = len(email_words & ticket_words) / len(email_words)
        if coverage > 0:
            score += TICKET_PHRASE_WEIGHT * coverage
            label = "high" if coverage >= 0.5 else "partial"
            reasons.append(f"{label} key phrase overlap ({coverage:.0%})")

    sender = _address(email.sender)
    if sender and sender in (ticket.description or "").lower():
        score += TICKET_SENDER_WEIGHT
        reasons.append("Sender mentioned in ticket")

    return score, reasons


def email_ticket_similarity(email: AnalyzedEmail, ticket: AnalyzedTicket) -> Similarity:
    """How well an existing ticket fits as the home for email.

    Content signals (shared references, subject/title overlap, key-phrase
    coverage, the sender named in the description) carry the score. The
    category and open-status shares only count in proportion to that content
    match, reaching full weight at CONTEXT_SATURATION; a ticket that merely
    shares a category with the email scores 0.
    """
    score, reasons = _content_signals(email, ticket)
    if score <= 0:
        return Similarity(0.0)

    relevance = min(1.0, score / CONTEXT_SATURATION)

    ticket_category = (ticket.category or "").strip().lower()
    if ticket_category and ticket_category in email.categories:
        score += TICKET_CATEGORY_WEIGHT * relevance
        reasons.append(f"Matching category '{ticket_category}'")
    else:
        category_overlap = jaccard(email.categories, ticket.categories)
        if category_overlap > 0:
            score += TICKET_CATEGORY_WEIGHT * category_overlap * relevance
            shared = ", ".join(sorted(email.categories & ticket.categories))
            reasons.append(f"Shared categories: {shared}")

    if ticket.is_open:
        score += TICKET_OPEN_WEIGHT * relevance
        reasons.append(f"Ticket is {ticket.status.lower()}")

    return Similarity(round(min(score, 1.0), 6), tuple(reasons))
