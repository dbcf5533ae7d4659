#!/usr/bin/env python3
"""
Sliding Context MCP Server - cross-session working memory on LanceDB

After every agent turn a compact summary is captured (NEW / UPDATE / SKIP
against the last few entries); before every turn the relevant recent context
is recalled, ranked, deduplicated and formatted for injection:
- FastMCP for the tool surface over stdio
- LanceDB for entry storage and cosine nearest-neighbour search
- Ollama/qwen3-embedding for local embeddings, Google Gemini fallback
- Google Gemini for turn summaries and classification
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import replace

from mcp.server.fastmcp import FastMCP

from classifier import NewAction, SkipAction, UpdateAction, classify_turn
from config import Config, validate_config
from embeddings import Embeddings
from formatting import format_sliding_context, format_time_ago
from i18n import t
from models import ContextEntry
from ranking import RankingParams, deduplicate_and_rank, split_chronological_and_ranked
from store import ContextStore
from summarize import (
    detect_session_type,
    extract_message_range,
    extract_telegram_message_ids,
    extract_topics,
    extract_turn_summary,
    has_decision_signal,
    has_tool_calls_in_turn,
    is_trivial_turn,
)
from timeline import generate_timeline
from utils import log, now_ms

CONFIG = Config()

MIN_SUMMARY_CHARS = 10
MIN_PROMPT_CHARS = 5
SEARCH_MIN_SCORE = 0.2

# =============================================================================
# Lazy singletons
# =============================================================================

_lock = threading.RLock()
_store: ContextStore | None = None
_embeddings: Embeddings | None = None
_prune_task: asyncio.Task | None = None


def get_store() -> ContextStore:
    """Get or create the entry store (thread-safe)."""
    global _store
    if _store is None:
        with _lock:
            if _store is None:  # Double-check after acquiring lock
                _store = ContextStore(CONFIG.db_path, CONFIG.embedding_dim, CONFIG.table_name)
    return _store


def get_embeddings() -> Embeddings:
    """Get or create the embedding service (thread-safe)."""
    global _embeddings
    if _embeddings is None:
        with _lock:
            if _embeddings is None:
                _embeddings = Embeddings(CONFIG)
    return _embeddings


# =============================================================================
# Capture path
# =============================================================================


async def capture_turn(messages: list[dict], session_key: str = "unknown", channel: str = "") -> str:
    """Index the summary of one finished turn. Never raises."""
    if not messages:
        return "Skipped: no messages"
    if CONFIG.skip_trivial and is_trivial_turn(messages):
        log(f"Skipped trivial turn from {session_key}", "DEBUG")
        return "Skipped: trivial turn"
    if session_key in CONFIG.skip_sessions:
        log(f"Skipped excluded session {session_key}", "DEBUG")
        return f"Skipped: session {session_key} is excluded"

    store = get_store()
    try:
        if CONFIG.summarization_mode == "llm":
            references = await asyncio.to_thread(
                store.get_recent, CONFIG.dedup_reference_count, CONFIG.window_hours
            )
            action = await asyncio.to_thread(classify_turn, messages, references, CONFIG)
        else:
            action = NewAction(summary=extract_turn_summary(messages, CONFIG.summary_max_chars))

        if isinstance(action, SkipAction):
            log(f"Skipped duplicate turn from {session_key}", "DEBUG")
            return "Skipped: duplicate of an existing entry"

        summary = action.summary
        if len(summary) < MIN_SUMMARY_CHARS:
            return "Skipped: summary too short"

        # Embed before touching the store so a failed embedding leaves UPDATE targets intact.
        vector = await get_embeddings().aembed(summary)

        if isinstance(action, UpdateAction):
            await asyncio.to_thread(store.delete_by_id, action.replace_id)
            log(f"Updating entry {action.replace_id[:8]}... from {session_key}", "DEBUG")

        telegram_ids = extract_telegram_message_ids(messages)
        session_id = session_key.split(":")[-1] or session_key
        entry = ContextEntry(
            id="",
            summary=summary,
            vector=vector,
            session_key=session_key,
            session_type=detect_session_type(session_key),
            channel=channel,
            timestamp=now_ms(),
            has_tool_calls=has_tool_calls_in_turn(messages),
            has_decision=has_decision_signal(messages),
            topics=tuple(extract_topics(messages)),
            session_file=f"{session_id}.jsonl",
            message_range=extract_message_range(messages),
            telegram_message_ids=tuple(telegram_ids) if telegram_ids else None,
        )
        stored = await asyncio.to_thread(store.insert, entry)
        await asyncio.to_thread(store.prune_older_than, CONFIG.window_hours)
    except Exception as e:
        log(f"Capture failed: {e}", "WARNING")
        return f"Error: capture failed: {e}"

    kind = "update" if isinstance(action, UpdateAction) else "new"
    log(f"Captured turn from {session_key} ({kind}, {len(summary)} chars)", "DEBUG")
    return f"Captured (ID: {stored.id[:8]}..., {kind}, {len(summary)} chars)"


# =============================================================================
# Recall path
# =============================================================================


async def recall_context(prompt: str, session_key: str = "unknown") -> str:
    """Build the context block for an upcoming turn; "" when there is nothing to inject."""
    if not prompt or len(prompt) < MIN_PROMPT_CHARS:
        return ""

    store = get_store()
    now = now_ms()
    try:
        recent, vector = await asyncio.gather(
            asyncio.to_thread(
                store.get_recent, CONFIG.recent_count + CONFIG.relevant_count, CONFIG.window_hours
            ),
            get_embeddings().aembed(prompt, "RETRIEVAL_QUERY"),
        )
        relevant = await asyncio.to_thread(
            store.nearest_neighbors, vector, CONFIG.relevant_count, CONFIG.min_relevance
        )

        params = RankingParams(
            current_session=session_key,
            now=now,
            max_entries=CONFIG.max_inject_entries,
            decay_half_life_hours=CONFIG.decay_half_life_hours,
            dedup_window_minutes=CONFIG.dedup_window_minutes,
            dedup_jaccard_threshold=CONFIG.dedup_jaccard_threshold,
        )
        merged = deduplicate_and_rank(recent, relevant, params)
        if not merged:
            return ""

        chronological, ranked = split_chronological_and_ranked(merged, CONFIG.recent_window_hours, now)
        context = format_sliding_context(
            chronological,
            ranked,
            max_tokens=CONFIG.max_inject_tokens,
            window_hours=CONFIG.window_hours,
            locale=CONFIG.locale,
            now=now,
        )
    except Exception as e:
        log(f"Recall failed: {e}", "WARNING")
        return ""

    if not context:
        return ""

    if CONFIG.timeline_enabled:
        try:
            timeline = generate_timeline(CONFIG.workspace_path, CONFIG.locale)
            if timeline:
                context = f"{context}\n{timeline}"
        except OSError as e:
            log(f"Timeline unavailable: {e}", "DEBUG")

    log(
        f"Injecting {len(chronological) + len(ranked)} entries "
        f"({len(chronological)} chrono + {len(ranked)} ranked) into {session_key}"
    )
    return context


# =============================================================================
# FastMCP Server
# =============================================================================

mcp = FastMCP(
    "sliding-context",
    instructions="Cross-session working memory: captures turn summaries and recalls ranked recent context",
)


@mcp.tool(
    annotations={
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
    }
)
async def sliding_context_capture(messages: list[dict], session_key: str = "unknown", channel: str = "") -> str:
    """Capture the summary of a finished agent turn.

    Args:
        messages: The session messages ({role, content, tool_calls?}); only the last turn is summarized
        session_key: Host session identifier (e.g. "telegram:main:abc123", "cron:daily")
        channel: Optional channel name
    """
    return await capture_turn(messages, session_key, channel)


@mcp.tool(
    annotations={
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
    }
)
async def sliding_context_recall(prompt: str, session_key: str = "unknown") -> str:
    """Recall ranked recent context for the prompt about to be answered.

    Args:
        prompt: The incoming user prompt
        session_key: Session that is about to run (boosts its own entries)
    """
    context = await recall_context(prompt, session_key)
    return context or "No recent context to inject."


@mcp.tool(
    annotations={
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
    }
)
async def sliding_context_search(query: str, limit: int = 5) -> str:
    """Search recent cross-session context by meaning.

    Args:
        query: Search query
        limit: Max results (default 5)
    """
    if not query.strip():
        return "Error: query is required"
    if limit <= 0:
        return f"Error: limit must be positive, got {limit}"

    try:
        vector = await get_embeddings().aembed(query, "RETRIEVAL_QUERY")
    except Exception as e:
        return f"Error: Failed to generate embedding: {e}"
    results = await asyncio.to_thread(get_store().nearest_neighbors, vector, limit, SEARCH_MIN_SCORE)
    if not results:
        return "No recent context found."

    strings = t(CONFIG.locale)
    now = now_ms()
    lines = [
        f"{i}. [{format_time_ago(r.entry.timestamp, now, strings)} · {r.entry.session_type}] "
        f"{r.entry.summary} ({r.score:.0%})"
        for i, r in enumerate(results, 1)
    ]
    return "\n".join(lines)


@mcp.tool(
    annotations={
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
    }
)
async def sliding_context_list(limit: int = 10) -> str:
    """List the newest context entries inside the window.

    Args:
        limit: Max entries (default 10)
    """
    if limit <= 0:
        return f"Error: limit must be positive, got {limit}"
    entries = await asyncio.to_thread(get_store().get_recent, limit, CONFIG.window_hours)
    if not entries:
        return "No entries in window."

    strings = t(CONFIG.locale)
    now = now_ms()
    return "\n".join(
        f"[{format_time_ago(e.timestamp, now, strings)} · {e.session_type}] {e.summary}" for e in entries
    )


@mcp.tool(
    annotations={
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
    }
)
async def sliding_context_stats() -> str:
    """Show sliding context statistics - entry count, window, injection budget."""
    strings = t(CONFIG.locale)
    count = await asyncio.to_thread(get_store().count)
    prune_active = _prune_task is not None and not _prune_task.done()

    lines = [
        "=== Sliding Context Statistics ===",
        f"{strings.stats_entries}: {count}",
        f"{strings.stats_window}: {CONFIG.window_hours:g}h (recent: {CONFIG.recent_window_hours:g}h chronological)",
        f"Inject: {CONFIG.recent_count} recent + {CONFIG.relevant_count} relevant "
        f"(max {CONFIG.max_inject_entries}, max {CONFIG.max_inject_tokens} tokens)",
        f"Summary: {CONFIG.summarization_mode}, max {CONFIG.summary_max_chars} chars",
        f"Embedding: {CONFIG.embedding_provider}/{CONFIG.embedding_model} ({CONFIG.embedding_dim}D)",
        f"{strings.stats_timeline}: {'enabled' if CONFIG.timeline_enabled else 'disabled'}",
        f"Pruning: {'✓ Active' if prune_active else '✗ Not active'} (every {CONFIG.prune_interval_hours:g}h)",
        f"Locale: {CONFIG.locale}",
        f"DB: {CONFIG.db_path}",
    ]
    return "\n".join(lines)


@mcp.tool(
    annotations={
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": True,
    }
)
async def sliding_context_clear() -> str:
    """Delete all context entries."""
    await asyncio.to_thread(get_store().clear)
    return "All context entries cleared."


# =============================================================================
# Window Pruning
# =============================================================================


async def _prune_expired_entries():
    """Periodically delete entries that slid out of the window."""
    while True:
        await asyncio.sleep(CONFIG.prune_interval_hours * 3600)
        try:
            await asyncio.to_thread(get_store().prune_older_than, CONFIG.window_hours)
            log(f"Pruned entries older than {CONFIG.window_hours:g}h", "DEBUG")
        except Exception as e:
            log(f"Prune error: {e}", "ERROR")


# =============================================================================
# Server Entry Point
# =============================================================================


async def run_server():
    """Run the MCP server with config validation and background pruning."""
    validate_config(CONFIG)
    log(f"Registered (db: {CONFIG.db_path}, window: {CONFIG.window_hours:g}h)")
    global _prune_task
    _prune_task = asyncio.create_task(_prune_expired_entries())
    try:
        await mcp.run_stdio_async()
    finally:
        _prune_task.cancel()
        log("Stopped")


def configure(**overrides) -> Config:
    """Replace the server configuration and drop singletons built from the old one."""
    global CONFIG, _store, _embeddings
    with _lock:
        CONFIG = replace(CONFIG, **overrides)
        _store = None
        _embeddings = None
    return CONFIG


def main():
    """Entry point."""
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
