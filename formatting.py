"""Format scored context entries for injection into the agent prompt."""

from __future__ import annotations

import math

from i18n import Strings, t
from models import ScoredEntry
from utils import now_ms


def session_label(session_type: str, strings: Strings) -> str:
    return strings.session_labels.get(session_type, strings.session_default)


def format_time_ago(timestamp: int, now: int, strings: Strings) -> str:
    diff_ms = now - timestamp
    minutes = diff_ms // 60_000
    hours = diff_ms // 3_600_000
    days = diff_ms // 86_400_000

    if minutes < 1:
        return strings.time_just_now
    if minutes < 60:
        return strings.time_minutes_ago(minutes)
    if hours < 24:
        return strings.time_hours_ago(hours)
    return strings.time_days_ago(days)


def estimate_tokens(text: str) -> int:
    """Rough token estimate: ~4 chars per token for English/German mixed text."""
    return math.ceil(len(text) / 4)


def format_entry_line(entry: ScoredEntry, now: int, strings: Strings) -> str:
    time_ago = format_time_ago(entry.timestamp, now, strings)
    label = session_label(entry.entry.session_type, strings)
    return f"[{time_ago} · {label}] {entry.summary}"


def format_sliding_context(
    chronological: list[ScoredEntry],
    ranked: list[ScoredEntry],
    max_tokens: int,
    window_hours: float,
    locale: str = "en",
    now: int | None = None,
) -> str:
    """Build the ``<sliding-context>`` block, or an empty string when nothing fits.

    The chronological section comes first. Lines that would push the block
    past ``max_tokens`` are left out.
    """
    now = now_ms() if now is None else now
    strings = t(locale)
    total_entries = len(chronological) + len(ranked)

    header = (
        f'<sliding-context window="{window_hours:g}h" entries="{total_entries}">\n'
        f"{strings.context_preamble}"
    )
    footer = "</sliding-context>"
    token_count = estimate_tokens(header) + estimate_tokens(footer)

    sections: list[str] = []
    for title, entries in (
        (strings.section_chronological, chronological),
        (strings.section_older_relevant, ranked),
    ):
        if not entries:
            continue
        section_header = f"\n\n{title}"
        token_count += estimate_tokens(section_header)
        lines = [section_header]
        for entry in entries:
            line = f"\n{format_entry_line(entry, now, strings)}"
            line_tokens = estimate_tokens(line)
            if token_count + line_tokens > max_tokens:
                break
            lines.append(line)
            token_count += line_tokens
        if len(lines) > 1:
            sections.append("".join(lines))

    if not sections:
        return ""

    note = strings.token_footer(token_count, total_entries)
    return f"{header}{''.join(sections)}\n{note}\n{footer}"
