"""Keyword relevance scoring for facts.

This is a cheap term-overlap heuristic used to pick facts for a prompt. It
is independent of the vector similarity index.
"""

from typing import Iterable

from .models import Fact, FactType

SUBJECT_MATCH = 5.0
DETAILS_MATCH = 2.0
PHRASE_MATCH = 10.0
TYPE_BOOST = 2.0
MIN_TERM_LENGTH = 4

BOOSTED_TYPES = frozenset({FactType.TOPIC_INTEREST.value, FactType.PREFERENCE.value})


def query_terms(query: str) -> list[str]:
    """Lowercase whitespace tokens longer than three characters."""
    return [t for t in query.lower().split() if len(t) >= MIN_TERM_LENGTH]


def score_fact(fact: Fact, query: str) -> float:
    """Score how relevant a fact is to a query.

    Each query term adds 5 when found in the subject and 2 when found in
    the details. The whole query found in the details adds 10 once. Topic
    interests and preferences get a flat 2, and the fact's confidence is
    added as-is.
    """
    lowered = query.lower().strip()
    subject = (fact.subject or "").lower()
    details = fact.details.lower()

    score = 0.0
    for term in query_terms(query):
        if term in subject:
            score += SUBJECT_MATCH
        if term in details:
            score += DETAILS_MATCH

    if lowered and lowered in details:
        score += PHRASE_MATCH

    if fact.fact_type in BOOSTED_TYPES:
        score += TYPE_BOOST

    if fact.confidence:
        score += fact.confidence

    return score


def rank_facts(
    facts: Iterable[Fact],
    query: str,
    limit: int = 10,
    fact_types: Iterable[str] | None = None,
    include_inactive: bool = False,
) -> list[Fact]:
    """Return the most relevant facts for a query, best first.

    Facts with equal scores keep their input order; there is no secondary
    sort key, so callers should treat ties as unordered.
    """
    types = set(fact_types) if fact_types else None
    candidates = [
        f
        for f in facts
        if (include_inactive or f.active) and (types is None or f.fact_type in types)
    ]
    scored = [(score_fact(f, query), f) for f in candidates]
    # sorted() is stable, so ties keep input order
    scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
    return [f for _, f in scored[:limit]]
