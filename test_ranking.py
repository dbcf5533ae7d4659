"""Tests for scoring, word-overlap dedup and the chronological/ranked split."""

import pytest

from models import ContextEntry, ScoredEntry, SearchResult
from ranking import (
    MS_PER_HOUR,
    MS_PER_MINUTE,
    RankingParams,
    compute_score,
    deduplicate_and_rank,
    deduplicate_similar,
    jaccard_similarity,
    significant_words,
    split_chronological_and_ranked,
)

NOW = 1_750_000_000_000


def make_entry(
    entry_id: str,
    summary: str = "",
    minutes_ago: float = 0,
    session_key: str = "cron:daily",
    session_type: str = "cron",
    has_tool_calls: bool = False,
    has_decision: bool = False,
) -> ContextEntry:
    return ContextEntry(
        id=entry_id,
        summary=summary or f"summary for {entry_id}",
        vector=[0.0, 0.0, 0.0, 1.0],
        session_key=session_key,
        session_type=session_type,
        timestamp=int(NOW - minutes_ago * MS_PER_MINUTE),
        has_tool_calls=has_tool_calls,
        has_decision=has_decision,
    )


def params(**overrides) -> RankingParams:
    return RankingParams(**{"current_session": "telegram:main:abc", "now": NOW, **overrides})


# =============================================================================
# Scoring
# =============================================================================


class TestComputeScore:
    def test_recency_is_half_at_half_life(self):
        entry = make_entry("a", minutes_ago=18 * 60)
        assert compute_score(entry, 0.0, params(decay_half_life_hours=18)) == pytest.approx(0.15)

    def test_fresh_entry_gets_full_recency(self):
        assert compute_score(make_entry("a"), 0.0, params()) == pytest.approx(0.30)

    def test_future_timestamp_clamped(self):
        entry = make_entry("a", minutes_ago=-120)
        assert compute_score(entry, 0.0, params()) == pytest.approx(0.30)

    def test_all_signals_reach_one(self):
        entry = make_entry(
            "a",
            session_key="telegram:main:abc",
            session_type="dm",
            has_decision=True,
        )
        assert compute_score(entry, 1.0, params()) == pytest.approx(1.0)

    def test_tool_calls_and_decision_count_once(self):
        both = make_entry("a", has_tool_calls=True, has_decision=True)
        one = make_entry("b", has_tool_calls=True)
        assert compute_score(both, 0.0, params()) == pytest.approx(compute_score(one, 0.0, params()))
        assert compute_score(one, 0.0, params()) == pytest.approx(0.40)

    def test_semantic_score_clamped(self):
        entry = make_entry("a", minutes_ago=10_000 * 60)
        assert compute_score(entry, 3.0, params()) == pytest.approx(compute_score(entry, 1.0, params()))
        assert compute_score(entry, -1.0, params()) == pytest.approx(compute_score(entry, 0.0, params()))

    def test_monotonic_in_semantic_similarity(self):
        entry = make_entry("a", minutes_ago=90)
        scores = [compute_score(entry, s / 10, params()) for s in range(11)]
        assert scores == sorted(scores)

    def test_monotonic_decay(self):
        scores = [compute_score(make_entry("a", minutes_ago=h * 60), 0.5, params()) for h in range(0, 200, 7)]
        assert scores == sorted(scores, reverse=True)

    def test_score_within_unit_interval(self):
        for minutes in (0, 30, 600, 10_000):
            for semantic in (0.0, 0.5, 1.0):
                entry = make_entry("a", minutes_ago=minutes, session_type="dm", has_decision=True)
                assert 0.0 <= compute_score(entry, semantic, params()) <= 1.0


# =============================================================================
# Word-overlap dedup
# =============================================================================


class TestJaccard:
    def test_significant_words_drop_short_tokens(self):
        assert significant_words("We fixed the Deploy script, and it works") == {"fixed", "deploy", "script", "works"}

    def test_identical_sets(self):
        assert jaccard_similarity({"deploy", "script"}, {"deploy", "script"}) == 1.0

    def test_empty_sets_are_not_similar(self):
        assert jaccard_similarity(set(), set()) == 0.0

    def test_partial_overlap(self):
        assert jaccard_similarity({"alpha", "beta"}, {"beta", "gamma"}) == pytest.approx(1 / 3)


class TestDeduplicateSimilar:
    def scored(self, entry_id, summary, score, minutes_ago=0):
        return ScoredEntry(make_entry(entry_id, summary, minutes_ago=minutes_ago), score)

    def test_keeps_highest_scored_duplicate(self):
        entries = [
            self.scored("best", "Reviewed pull request about caching layer refactor", 0.9),
            self.scored("dup", "Reviewed pull request about caching layer refactor today", 0.5, minutes_ago=5),
        ]
        result = deduplicate_similar(entries)
        assert [e.id for e in result] == ["best"]

    def test_outside_window_both_survive(self):
        entries = [
            self.scored("a", "Reviewed pull request about caching layer refactor", 0.9),
            self.scored("b", "Reviewed pull request about caching layer refactor", 0.5, minutes_ago=120),
        ]
        assert [e.id for e in deduplicate_similar(entries, window_minutes=60)] == ["a", "b"]

    def test_distinct_summaries_preserve_order(self):
        entries = [
            self.scored("a", "Planned the birthday dinner reservation", 0.9),
            self.scored("b", "Debugged flaky websocket reconnect logic", 0.7),
            self.scored("c", "Drafted quarterly budget spreadsheet", 0.4),
        ]
        result = deduplicate_similar(entries)
        assert [e.id for e in result] == ["a", "b", "c"]
        assert len(result) <= len(entries)

    def test_empty_summaries_never_collapse(self):
        entries = [self.scored("a", "ok", 0.9), self.scored("b", "ok", 0.8)]
        assert len(deduplicate_similar(entries)) == 2


# =============================================================================
# Retrieval assembly
# =============================================================================


class TestDeduplicateAndRank:
    def test_no_duplicate_ids_across_sources(self):
        shared = make_entry("shared", "Configured nginx reverse proxy", minutes_ago=30)
        other = make_entry("other", "Wrote grocery list for weekend", minutes_ago=60)
        result = deduplicate_and_rank(
            [shared, other],
            [SearchResult(shared, 0.95), SearchResult(other, 0.4)],
            params(),
        )
        ids = [e.id for e in result]
        assert sorted(ids) == ["other", "shared"]
        assert len(ids) == len(set(ids))

    def test_recent_occurrence_wins(self):
        shared = make_entry("shared", "Configured nginx reverse proxy", minutes_ago=30)
        result = deduplicate_and_rank([shared], [SearchResult(shared, 0.95)], params())
        assert result[0].final_score == pytest.approx(compute_score(shared, 0.0, params()))

    def test_sorted_by_score_and_truncated(self):
        summaries = [
            "Renewed passport appointment",
            "Tuned kafka consumer lag",
            "Painted bedroom walls",
            "Benchmarked redis cluster",
            "Planned hiking trip",
            "Refilled printer toner",
        ]
        recent = [make_entry(f"e{i}", s, minutes_ago=i * 120) for i, s in enumerate(summaries)]
        result = deduplicate_and_rank(recent, [], params(max_entries=3))
        assert [e.id for e in result] == ["e0", "e1", "e2"]
        scores = [e.final_score for e in result]
        assert scores == sorted(scores, reverse=True)

    def test_semantic_hit_outranks_plain_recent(self):
        recent = make_entry("recent", "Watered the office plants", minutes_ago=60)
        relevant = make_entry("relevant", "Migrated postgres schema", minutes_ago=60)
        result = deduplicate_and_rank([recent], [SearchResult(relevant, 0.9)], params())
        assert [e.id for e in result] == ["relevant", "recent"]

    def test_equal_scores_keep_recent_before_relevant(self):
        from_relevant = make_entry("from-relevant", "Renewed the TLS certificates", minutes_ago=45)
        from_recent = make_entry("from-recent", "Cleaned the shared downloads folder", minutes_ago=45)
        result = deduplicate_and_rank([from_recent], [SearchResult(from_relevant, 0.0)], params())
        assert result[0].final_score == result[1].final_score
        assert [e.id for e in result] == ["from-recent", "from-relevant"]

    def test_equal_scores_keep_recent_list_order(self):
        recent = [
            make_entry("second", "Cleaned the shared downloads folder", minutes_ago=45),
            make_entry("first", "Renewed the TLS certificates", minutes_ago=45),
            make_entry("third", "Updated the team calendar invites", minutes_ago=45),
        ]
        result = deduplicate_and_rank(recent, [], params())
        assert len({e.final_score for e in result}) == 1
        assert [e.id for e in result] == ["second", "first", "third"]

    def test_empty_inputs(self):
        assert deduplicate_and_rank([], [], params()) == []


# =============================================================================
# Chronological / ranked split
# =============================================================================


class TestSplit:
    def test_partition_and_order(self):
        entries = [
            ScoredEntry(make_entry("old-low", minutes_ago=30 * 60), 0.2),
            ScoredEntry(make_entry("new", minutes_ago=10), 0.6),
            ScoredEntry(make_entry("old-high", minutes_ago=20 * 60), 0.5),
            ScoredEntry(make_entry("mid", minutes_ago=5 * 60), 0.3),
        ]
        chronological, ranked = split_chronological_and_ranked(entries, 12, NOW)
        assert [e.id for e in chronological] == ["mid", "new"]
        assert [e.id for e in ranked] == ["old-high", "old-low"]
        assert sorted(e.id for e in chronological + ranked) == sorted(e.id for e in entries)

    def test_boundary_is_chronological(self):
        entry = ScoredEntry(make_entry("edge", minutes_ago=12 * 60), 0.1)
        chronological, ranked = split_chronological_and_ranked([entry], 12, NOW)
        assert chronological == [entry]
        assert ranked == []

    def test_end_to_end_window_scenario(self):
        current = "telegram:main:abc"
        recent = [
            make_entry("t-10min", "Booked train tickets to Berlin", 10, current, "dm"),
            make_entry("t-5h", "Reviewed failing CI pipeline config", 5 * 60),
            make_entry("t-3d", "Sketched architecture for photo backup", 3 * 24 * 60),
        ]
        merged = deduplicate_and_rank(recent, [], params(current_session=current))
        assert merged[0].id == "t-10min"

        chronological, ranked = split_chronological_and_ranked(merged, 12, NOW)
        assert [e.id for e in chronological] == ["t-5h", "t-10min"]
        assert [e.id for e in ranked] == ["t-3d"]
        assert MS_PER_HOUR * 12 < NOW - ranked[0].timestamp
