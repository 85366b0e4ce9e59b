"""Clustering of analysed emails into duplicate / related groups."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from triage.matching.similarity import Similarity, email_similarity, strip_reply_markers
from triage.processing.types import PRIORITY_RANK, AnalyzedEmail, Category, Priority

logger = logging.getLogger(__name__)

SimilarityFn = Callable[[AnalyzedEmail, AnalyzedEmail], Similarity]

#: Pairwise scores keyed by index pair (i, j) with i < j.
PairScores = Mapping[tuple[int, int], Similarity]

_CATEGORY_PREFERENCE = (
    Category.BUG,
    Category.FEATURE,
    Category.SUPPORT,
    Category.BILLING,
    Category.FEEDBACK,
    Category.MEETING,
    Category.URGENT,
)
_MAX_COMMON_PHRASES = 5


@dataclass(frozen=True)
class RelatedEmail:
    email: AnalyzedEmail
    similarity: Similarity


@dataclass
class EmailGroup:
    """Request-scoped cluster of related emails around one primary email."""

    id: str
    primary_email: AnalyzedEmail
    related_emails: list[RelatedEmail] = field(default_factory=list)
    suggested_ticket_title: str = ""
    suggested_category: str = "general"
    suggested_priority: Priority = Priority.LOW
    common_phrases: list[str] = field(default_factory=list)
    participants: list[str] = field(default_factory=list)
    date_range: tuple[datetime, datetime] | None = None

    @property
    def members(self) -> list[AnalyzedEmail]:
        return [self.primary_email, *(r.email for r in self.related_emails)]


# ── Strategies ─────────────────────────────────────────────────────────────────


class ClusteringStrategy(Protocol):
    """Turns pairwise scores into clusters of email indices."""

    def cluster(
        self,
        emails: Sequence[AnalyzedEmail],
        scores: PairScores,
        threshold: float,
    ) -> list[list[int]]:
        ...


def _score(scores: PairScores, i: int, j: int) -> float:
    return scores[(i, j) if i < j else (j, i)].score


class ConnectedComponents:
    """Union-find over the "related" relation (score >= threshold).

    Relatedness becomes transitive: if A~B and B~C, all three share a
    cluster even when A~C alone falls under the threshold.
    """

    def cluster(
        self,
        emails: Sequence[AnalyzedEmail],
        scores: PairScores,
        threshold: float,
    ) -> list[list[int]]:
        parent = list(range(len(emails)))

        def find(i: int) -> int:
            while parent[i] != i:
                parent[i] = parent[parent[i]]
                i = parent[i]
            return i

        for (i, j), similarity in scores.items():
            if similarity.score >= threshold:
                root_i, root_j = find(i), find(j)
                if root_i != root_j:
                    parent[max(root_i, root_j)] = min(root_i, root_j)

        components: dict[int, list[int]] = {}
        for i in range(len(emails)):
            components.setdefault(find(i), []).append(i)
        return list(components.values())


class GreedyAgglomerative:
    """Oldest-first seeding: each unassigned seed absorbs the unassigned emails
    directly related to it.  Not transitive."""

    def cluster(
        self,
        emails: Sequence[AnalyzedEmail],
        scores: PairScores,
        threshold: float,
    ) -> list[list[int]]:
        order = sorted(range(len(emails)), key=lambda i: (emails[i].received_at, emails[i].id))
        assigned: set[int] = set()
        clusters: list[list[int]] = []
        for seed in order:
            if seed in assigned:
                continue
            members = [seed]
            assigned.add(seed)
            for other in order:
                if other not in assigned and _score(scores, seed, other) >= threshold:
                    members.append(other)
                    assigned.add(other)
            clusters.append(members)
        return clusters


# ── Grouping ───────────────────────────────────────────────────────────────────


def pairwise_scores(
    emails: Sequence[AnalyzedEmail],
    similarity: SimilarityFn = email_similarity,
) -> dict[tuple[int, int], Similarity]:
    """Score every unordered pair once.  O(n^2); callers cap the batch size."""
    return {
        (i, j): similarity(emails[i], emails[j])
        for i in range(len(emails))
        for j in range(i + 1, len(emails))
    }


def group_emails(
    emails: Sequence[AnalyzedEmail],
    threshold: float,
    strategy: ClusteringStrategy | None = None,
    similarity: SimilarityFn = email_similarity,
) -> list[EmailGroup]:
    """Cluster emails and return one EmailGroup per cluster of two or more.

    Singletons produce no group.  Groups are ordered by their primary's
    received time.
    """
    if len(emails) < 2:
        return []

    strategy = strategy or ConnectedComponents()
    scores = pairwise_scores(emails, similarity)
    clusters = strategy.cluster(emails, scores, threshold)

    groups = [
        _build_group(emails, members, scores)
        for members in clusters
        if len(members) >= 2
    ]
    groups.sort(key=lambda g: (g.primary_email.received_at, g.primary_email.id))
    logger.info(
        "Grouped %d email(s) into %d group(s) at threshold %.2f",
        len(emails),
        len(groups),
        threshold,
    )
    return groups


def _pick_primary(emails: Sequence[AnalyzedEmail], members: Sequence[int]) -> int:
    """Earliest received wins; ties go to the higher topic score, then the lower id."""
    return min(
        members,
        key=lambda i: (emails[i].received_at, -emails[i].topic_score, emails[i].id),
    )


def _build_group(
    emails: Sequence[AnalyzedEmail],
    members: Sequence[int],
    scores: PairScores,
) -> EmailGroup:
    primary_index = _pick_primary(emails, members)
    primary = emails[primary_index]

    related = [
        RelatedEmail(
            email=emails[i],
            similarity=scores[(primary_index, i) if primary_index < i else (i, primary_index)],
        )
        for i in members
        if i != primary_index
    ]
    related.sort(key=lambda r: (-r.similarity.score, r.email.received_at, r.email.id))

    group = EmailGroup(id=f"group-{primary.id}", primary_email=primary, related_emails=related)
    _add_suggestions(group)
    return group


def _add_suggestions(group: EmailGroup) -> None:
    """Fill in the ticket suggestions shown alongside a group."""
    members = group.members
    primary = group.primary_email

    group.suggested_ticket_title = strip_reply_markers(primary.subject) or "General Issue"
    group.suggested_category = next(
        (c.value for c in _CATEGORY_PREFERENCE if c.value in primary.categories),
        "general",
    )
    group.suggested_priority = max(
        (m.suggested_priority for m in members), key=lambda p: PRIORITY_RANK[p]
    )

    phrase_counts: Counter[str] = Counter()
    for member in members:
        phrase_counts.update({p.text.lower().strip() for p in member.key_phrases})
    group.common_phrases = [
        phrase
        for phrase, count in sorted(phrase_counts.items(), key=lambda kv: (-kv[1], kv[0]))
        if count > 1
    ][:_MAX_COMMON_PHRASES]

    group.participants = list(dict.fromkeys(m.sender for m in members))
    received = [m.received_at for m in members]
    group.date_range = (min(received), max(received))
