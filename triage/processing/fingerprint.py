"""Deterministic content fingerprints for duplicate detection."""

import hashlib
import json
import re
from collections.abc import Iterable

from triage.extraction.types import Entity, KeyPhrase

#: Entity types that identify what an email is about (dates and quantities don't).
IMPORTANT_ENTITY_TYPES = frozenset(
    {"PERSON", "ORGANIZATION", "EVENT", "TITLE", "COMMERCIAL_ITEM"}
)
TOP_N = 10

_REPLY_PREFIX = re.compile(r"^(re:|fwd:|fw:)\s*", re.IGNORECASE)


def normalize_subject(subject: str) -> str:
    """Lowercase, drop one leading reply/forward marker, trim."""
    return _REPLY_PREFIX.sub("", (subject or "").lower(), count=1).strip()


def top_phrases(key_phrases: Iterable[KeyPhrase], n: int = TOP_N) -> list[str]:
    """The n best-scoring phrases, normalized and sorted lexicographically."""
    ranked = sorted(
        ((p.score, p.text.lower().strip()) for p in key_phrases),
        key=lambda item: (-item[0], item[1]),
    )
    return sorted(text for _, text in ranked[:n])


def top_entities(entities: Iterable[Entity], n: int = TOP_N) -> list[str]:
    """The n best-scoring important entities as TYPE:text, sorted lexicographically."""
    ranked = sorted(
        (
            (e.score, f"{e.type}:{e.text.lower().strip()}")
            for e in entities
            if e.type in IMPORTANT_ENTITY_TYPES
        ),
        key=lambda item: (-item[0], item[1]),
    )
    return sorted(rendered for _, rendered in ranked[:n])


def fingerprint(
    subject: str,
    key_phrases: Iterable[KeyPhrase],
    entities: Iterable[Entity],
) -> str:
    """SHA-256 hex digest of normalized subject + top phrases + top entities.

    Input order never matters: phrases and entities are ranked, then sorted,
    before serialisation.
    """
    content = json.dumps(
        {
            "subject": normalize_subject(subject),
            "phrases": top_phrases(key_phrases),
            "entities": top_entities(entities),
        },
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
