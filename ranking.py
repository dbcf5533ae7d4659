"""Ranking and deduplication for context entries.

Combines semantic relevance, recency, session and decision signals into a
single score per entry, removes near-duplicate summaries, and splits the
result into a chronological timeline and an older ranked list.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from models import ContextEntry, ScoredEntry, SearchResult

MS_PER_HOUR = 3_600_000
MS_PER_MINUTE = 60_000

# Weights sum to 1.0. Boosts are flat additive bonuses, not multipliers.
SEMANTIC_WEIGHT = 0.40
RECENCY_WEIGHT = 0.30
SAME_SESSION_BOOST = 0.10
ACTION_BOOST = 0.10
DM_BOOST = 0.10

_WORD_RE = re.compile(r"\w+")


@dataclass(frozen=True, slots=True)
class RankingParams:
    current_session: str
    now: int  # epoch ms, reference time for recency
    max_entries: int = 8
    decay_half_life_hours: float = 18
    dedup_window_minutes: float = 60
    dedup_jaccard_threshold: float = 0.55


def compute_score(entry: ContextEntry, semantic_score: float, params: RankingParams) -> float:
    """Compute a 0-1 relevance score for one entry.

    Weights:
        Semantic relevance:   0.40  (0 for entries that only came from the recency fetch)
        Recency:              0.30  (exponential decay, exactly 50% at the half-life)
        Same session:         0.10
        Tool call / decision: 0.10
        Direct message:       0.10
    """
    score = max(0.0, min(semantic_score, 1.0)) * SEMANTIC_WEIGHT

    hours_ago = max(0.0, (params.now - entry.timestamp) / MS_PER_HOUR)
    decay = math.log(2) / params.decay_half_life_hours
    score += math.exp(-decay * hours_ago) * RECENCY_WEIGHT

    if entry.session_key == params.current_session:
        score += SAME_SESSION_BOOST
    if entry.has_tool_calls or entry.has_decision:
        score += ACTION_BOOST
    if entry.session_type == "dm":
        score += DM_BOOST

    return score


def significant_words(text: str) -> set[str]:
    """Lowercased tokens longer than three characters."""
    return {word for word in _WORD_RE.findall(text.lower()) if len(word) > 3}


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def deduplicate_similar(
    entries: list[ScoredEntry],
    window_minutes: float = 60,
    threshold: float = 0.55,
) -> list[ScoredEntry]:
    """Drop entries whose summary repeats an already kept entry.

    Input must be ordered by score, highest first: the first entry of any
    near-duplicate group is the one kept. A candidate is only compared with
    kept entries whose timestamps lie within ``window_minutes`` of its own.
    """
    window_ms = window_minutes * MS_PER_MINUTE
    kept: list[tuple[ScoredEntry, set[str]]] = []

    for candidate in entries:
        words = significant_words(candidate.summary)
        duplicate = any(
            abs(candidate.timestamp - other.timestamp) <= window_ms
            and jaccard_similarity(words, other_words) >= threshold
            for other, other_words in kept
        )
        if not duplicate:
            kept.append((candidate, words))

    return [entry for entry, _ in kept]


def deduplicate_and_rank(
    recent: list[ContextEntry],
    relevant: list[SearchResult],
    params: RankingParams,
) -> list[ScoredEntry]:
    """Merge recent (time-based) and relevant (semantic) entries, rank, and return top N.

    The first occurrence of an id wins, recent entries first. Sorting is
    stable, so equal scores keep that merge order.
    """
    seen: set[str] = set()
    scored: list[ScoredEntry] = []

    for entry in recent:
        if entry.id in seen:
            continue
        seen.add(entry.id)
        scored.append(ScoredEntry(entry, compute_score(entry, 0.0, params)))

    for result in relevant:
        if result.entry.id in seen:
            continue
        seen.add(result.entry.id)
        scored.append(ScoredEntry(result.entry, compute_score(result.entry, result.score, params)))

    scored.sort(key=lambda s: s.final_score, reverse=True)
    deduped = deduplicate_similar(
        scored,
        window_minutes=params.dedup_window_minutes,
        threshold=params.dedup_jaccard_threshold,
    )
    return deduped[: params.max_entries]


def split_chronological_and_ranked(
    entries: list[ScoredEntry],
    recent_window_hours: float,
    now: int,
) -> tuple[list[ScoredEntry], list[ScoredEntry]]:
    """Partition entries into a timeline (oldest first) and older context (best first).

    Every entry lands in exactly one list; nothing is dropped.
    """
    window_ms = recent_window_hours * MS_PER_HOUR
    chronological = [e for e in entries if now - e.timestamp <= window_ms]
    ranked = [e for e in entries if now - e.timestamp > window_ms]

    chronological.sort(key=lambda e: e.timestamp)
    ranked.sort(key=lambda e: e.final_score, reverse=True)
    return chronological, ranked
