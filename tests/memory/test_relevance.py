"""Tests for keyword relevance scoring."""

import pytest

from tutormem.memory import Fact, rank_facts, score_fact
from tutormem.memory.relevance import query_terms


def make_fact(details: str, fact_type: str = "struggle", **overrides) -> Fact:
    return Fact(user_id="u1", fact_type=fact_type, details=details, **overrides)


class TestQueryTerms:
    """Tests for query tokenization."""

    def test_short_terms_dropped(self):
        """Terms of three characters or fewer are ignored."""
        assert query_terms("I am bad at Math") == ["math"]

    def test_lowercased(self):
        """Terms are lowercased."""
        assert query_terms("ALGEBRA Help") == ["algebra", "help"]


class TestScoreFact:
    """Tests for score_fact."""

    def test_subject_and_details_matches(self):
        """Subject hits add 5 and details hits add 2."""
        fact = make_fact("Struggles with algebra equations", subject="Math", confidence=0.5)
        assert score_fact(fact, "algebra math") == pytest.approx(7.5)

    def test_whole_query_phrase_bonus(self):
        """The whole query inside the details adds 10 once."""
        fact = make_fact("Struggles with algebra equations", subject="Math", confidence=0.5)
        assert score_fact(fact, "Algebra Equations") == pytest.approx(14.5)

    def test_type_boost(self):
        """Preferences and topic interests get a flat boost."""
        preference = make_fact("Likes videos", fact_type="preference")
        interest = make_fact("Likes videos", fact_type="topic_interest")
        goal = make_fact("Likes videos", fact_type="goal")

        assert score_fact(preference, "unrelated") == 2.0
        assert score_fact(interest, "unrelated") == 2.0
        assert score_fact(goal, "unrelated") == 0.0

    def test_confidence_added(self):
        """Confidence is added to the score."""
        fact = make_fact("Nothing relevant", confidence=0.8)
        assert score_fact(fact, "chemistry") == pytest.approx(0.8)

    def test_empty_query_no_phrase_bonus(self):
        """An empty query never earns the phrase bonus."""
        fact = make_fact("Anything")
        assert score_fact(fact, "   ") == 0.0

    def test_more_matched_terms_never_lower(self):
        """Adding a matching term does not lower the score."""
        fact = make_fact("Enjoys geometry proofs", subject="Math")
        one = score_fact(fact, "geometry unrelated")
        two = score_fact(fact, "geometry proofs unrelated")
        three = score_fact(fact, "geometry proofs math unrelated")
        assert one < two < three


class TestRankFacts:
    """Tests for rank_facts."""

    def test_best_first(self):
        """Facts are ordered by descending score."""
        weak = make_fact("Reads novels")
        strong = make_fact("Struggles with algebra", subject="Math")
        assert rank_facts([weak, strong], "algebra math") == [strong, weak]

    def test_limit(self):
        """Only the top facts are returned."""
        facts = [make_fact(f"fact {i}") for i in range(5)]
        assert len(rank_facts(facts, "fact", limit=3)) == 3

    def test_ties_keep_input_order(self):
        """Equal scores keep their input order."""
        a = make_fact("alpha")
        b = make_fact("beta")
        c = make_fact("gamma")
        assert rank_facts([a, b, c], "unrelated") == [a, b, c]

    def test_inactive_excluded(self):
        """Inactive facts are dropped unless asked for."""
        active = make_fact("algebra", id=1)
        inactive = make_fact("algebra", id=2, active=False)

        assert rank_facts([active, inactive], "algebra") == [active]
        assert len(rank_facts([active, inactive], "algebra", include_inactive=True)) == 2

    def test_type_filter(self):
        """fact_types limits the candidates."""
        goal = make_fact("algebra", fact_type="goal")
        struggle = make_fact("algebra", fact_type="struggle")
        assert rank_facts([goal, struggle], "algebra", fact_types=["goal"]) == [goal]

    def test_empty(self):
        """No facts gives no results."""
        assert rank_facts([], "anything") == []
