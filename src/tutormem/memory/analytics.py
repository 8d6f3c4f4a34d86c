"""Aggregate views over a user's facts.

All functions here are pure: they take a list of facts and return a
summary. Callers pass active facts unless stated otherwise.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .models import FACT_TYPES, Fact, FactType

RECENT_DAYS = 30
MAX_RECENT_SUBJECTS = 5
MAX_INSIGHTS = 5

GAP_QUESTIONS: dict[str, str] = {
    FactType.PREFERENCE.value: "What are your preferences for learning content?",
    FactType.STRUGGLE.value: "What areas or topics do you find most challenging?",
    FactType.GOAL.value: "What are your learning goals or what do you hope to achieve?",
    FactType.LEARNING_STYLE.value: (
        "How do you prefer to learn? (e.g., visual, hands-on, reading)"
    ),
    FactType.TOPIC_INTEREST.value: "What topics or subjects are you most interested in?",
    FactType.OTHER.value: "Is there anything else you'd like me to know about you?",
}

STRENGTH_MARKERS = ("good at", "strong in", "strength", "excel", "skilled")
CHALLENGE_MARKERS = ("difficult", "challenge", "struggle", "hard time", "trouble with")
APPROACH_MARKERS = ("learn", "study", "practice", "prefer when")


@dataclass
class KnowledgeGaps:
    """What is missing or thin in a user's fact profile."""

    missing_fact_types: list[str] = field(default_factory=list)
    low_coverage_subjects: list[str] = field(default_factory=list)
    recommended_questions: list[str] = field(default_factory=list)


@dataclass
class KnowledgeProfile:
    """A narrative summary of a user's facts."""

    summary: str
    fact_type_distribution: dict[str, int] = field(default_factory=dict)
    total_facts: int = 0
    recent_subjects: list[str] = field(default_factory=list)


@dataclass
class PatternAnalysis:
    """Higher-level insights derived from fact content and counts."""

    strengths: list[str] = field(default_factory=list)
    challenges: list[str] = field(default_factory=list)
    recommended_approaches: list[str] = field(default_factory=list)
    learning_patterns: list[str] = field(default_factory=list)
    engagement_suggestions: list[str] = field(default_factory=list)


def count_by_type(facts: list[Fact]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for fact in facts:
        counts[fact.fact_type] = counts.get(fact.fact_type, 0) + 1
    return counts


def group_facts(facts: list[Fact]) -> dict[str, list[Fact]]:
    """Group facts by type, and by "type:subject" when a subject is set."""
    grouped: dict[str, list[Fact]] = {}
    for fact in facts:
        grouped.setdefault(fact.fact_type, []).append(fact)
        if fact.subject:
            grouped.setdefault(f"{fact.fact_type}:{fact.subject}", []).append(fact)
    return grouped


def identify_knowledge_gaps(facts: list[Fact]) -> KnowledgeGaps:
    """Find fact types with no facts and subjects with exactly one.

    One canned follow-up question is emitted per missing type, then one per
    under-covered subject, in that order.
    """
    type_counts = count_by_type(facts)
    subject_counts: dict[str, int] = {}
    for fact in facts:
        if fact.subject:
            subject_counts[fact.subject] = subject_counts.get(fact.subject, 0) + 1

    missing = [t for t in FACT_TYPES if not type_counts.get(t)]
    low_coverage = [s for s, n in subject_counts.items() if n == 1]

    questions = [GAP_QUESTIONS[t] for t in GAP_QUESTIONS if t in missing]
    questions.extend(
        f"Can you tell me more about your experience with {subject}?"
        for subject in low_coverage
    )

    return KnowledgeGaps(
        missing_fact_types=missing,
        low_coverage_subjects=low_coverage,
        recommended_questions=questions,
    )


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _excerpt(facts: list[Fact], limit: int, with_subject: bool = False) -> str:
    parts = []
    for fact in facts[:limit]:
        if with_subject and fact.subject:
            parts.append(f"{fact.subject} ({fact.details})")
        else:
            parts.append(fact.details)
    return "; ".join(parts)


def generate_profile_summary(
    facts: list[Fact],
    max_facts_per_type: int = 3,
    now: datetime | None = None,
) -> KnowledgeProfile:
    """Summarize a user's facts as a short narrative.

    Args:
        facts: Active facts, most recently updated first.
        max_facts_per_type: How many excerpts to show per category.
        now: Reference time for "recent" subjects; defaults to UTC now.

    Returns:
        KnowledgeProfile with the summary text and counts.
    """
    if not facts:
        return KnowledgeProfile(
            summary="No knowledge profile available for this user yet."
        )

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    cutoff = now - timedelta(days=RECENT_DAYS)

    distribution = count_by_type(facts)
    by_type: dict[str, list[Fact]] = {}
    for fact in facts:
        by_type.setdefault(fact.fact_type, []).append(fact)

    recent: list[str] = []
    for fact in facts:
        stamp = _parse_timestamp(fact.updated_at or fact.created_at)
        if fact.subject and stamp is not None and stamp > cutoff:
            recent.append(fact.subject)
    recent = list(dict.fromkeys(recent))

    parts = [
        f"This user has {len(facts)} stored facts across "
        f"{len(distribution)} categories."
    ]

    sections = (
        (FactType.PREFERENCE, "Preferences", False),
        (FactType.GOAL, "Goals", False),
        (FactType.STRUGGLE, "Struggles", False),
        (FactType.TOPIC_INTEREST, "Interests", True),
        (FactType.LEARNING_STYLE, "Learning style", False),
    )
    for fact_type, label, with_subject in sections:
        group = by_type.get(fact_type.value)
        if group:
            parts.append(
                f"{label}: {_excerpt(group, max_facts_per_type, with_subject)}."
            )

    if recent:
        parts.append(f"Recent subjects: {', '.join(recent[:MAX_RECENT_SUBJECTS])}.")

    return KnowledgeProfile(
        summary=" ".join(parts),
        fact_type_distribution=distribution,
        total_facts=len(facts),
        recent_subjects=recent,
    )


def _contains_any(text: str, markers: tuple[str, ...]) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in markers)


def _labelled(fact: Fact) -> str:
    return f"{fact.subject}: {fact.details}" if fact.subject else fact.details


def analyze_fact_patterns(facts: list[Fact]) -> PatternAnalysis:
    """Derive strengths, challenges and learning patterns from facts."""
    if not facts:
        return PatternAnalysis()

    by_type: dict[str, list[Fact]] = {t: [] for t in FACT_TYPES}
    for fact in facts:
        by_type.setdefault(fact.fact_type, []).append(fact)
    interests = by_type[FactType.TOPIC_INTEREST.value]
    struggles = by_type[FactType.STRUGGLE.value]
    goals = by_type[FactType.GOAL.value]
    styles = by_type[FactType.LEARNING_STYLE.value]

    strengths: list[str] = []
    for fact in facts:
        if _contains_any(fact.details, STRENGTH_MARKERS):
            strengths.append(fact.subject or fact.details)
    for interest in interests:
        if interest.subject and interest.subject not in strengths:
            strengths.append(interest.subject)

    challenges = [_labelled(s) for s in struggles]
    for fact in facts:
        if fact.fact_type == FactType.STRUGGLE.value:
            continue
        if _contains_any(fact.details, CHALLENGE_MARKERS):
            challenge = _labelled(fact)
            if challenge not in challenges:
                challenges.append(challenge)

    approaches = [s.details for s in styles]
    for pref in by_type[FactType.PREFERENCE.value]:
        if _contains_any(pref.details, APPROACH_MARKERS) and pref.details not in approaches:
            approaches.append(pref.details)

    patterns: list[str] = []
    if len(goals) > 2:
        patterns.append("Goal-oriented learner who benefits from clear objectives")
    if len(struggles) > len(goals):
        patterns.append(
            "Focuses more on challenges than goals - may benefit from "
            "strengths-based approach"
        )
    if len(interests) > len(goals):
        patterns.append(
            "Interest-driven learner who engages best with topics of personal relevance"
        )

    suggestions: list[str] = []
    if goals:
        suggestions.append(
            "Connect learning activities to their stated goals for increased motivation"
        )
    if interests:
        suggestions.append(
            "Use topics of interest as examples or contexts for teaching new concepts"
        )
    if styles:
        suggestions.append(
            "Accommodate their preferred learning style when presenting new information"
        )
    if challenges:
        suggestions.append(
            "Provide extra support for identified challenge areas while building "
            "on strengths"
        )

    return PatternAnalysis(
        strengths=strengths[:MAX_INSIGHTS],
        challenges=challenges[:MAX_INSIGHTS],
        recommended_approaches=approaches,
        learning_patterns=patterns,
        engagement_suggestions=suggestions,
    )
