"""Turn summarization with NEW / UPDATE / SKIP classification.

The generation service sees the last turn plus the K most recent stored
summaries and answers ``NEW: <text>``, ``UPDATE [n]: <text>`` or ``SKIP``.
Parsing never raises: anything that does not fit the grammar becomes a
NEW entry, so an odd response can only over-retain, never lose a turn.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Union

from config import Config
from i18n import t
from llm import generate
from models import ContextEntry
from summarize import extract_turn_summary
from utils import log, text_content, truncate

MIN_UPDATE_SUMMARY_CHARS = 10
MIN_TRANSCRIPT_CHARS = 20
MIN_RESPONSE_CHARS = 3
TRANSCRIPT_MAX_CHARS = 3000
TRANSCRIPT_LINE_MAX_CHARS = 400

_SKIP_RE = re.compile(r"^SKIP\s*$", re.IGNORECASE)
_UPDATE_RE = re.compile(r"^UPDATE\s*\[(\d+)\]\s*:\s*(.+)", re.IGNORECASE | re.DOTALL)
_NEW_RE = re.compile(r"^NEW\s*:\s*(.+)", re.IGNORECASE | re.DOTALL)
INJECTED_MARKER = "<sliding-context window="
_INJECTED_BLOCK_RE = re.compile(r"<sliding-context[\s\S]*?</sliding-context>(?:\s*<timeline>[\s\S]*?</timeline>)?")

# =============================================================================
# Parsed replies (grammar level)
# =============================================================================


@dataclass(frozen=True, slots=True)
class SkipReply:
    pass


@dataclass(frozen=True, slots=True)
class UpdateReply:
    index: int  # 1-based, 1 = most recent reference entry
    summary: str


@dataclass(frozen=True, slots=True)
class NewReply:
    summary: str


@dataclass(frozen=True, slots=True)
class UnparseableReply:
    raw: str


ClassifierReply = Union[SkipReply, UpdateReply, NewReply, UnparseableReply]

# =============================================================================
# Resolved actions
# =============================================================================


@dataclass(frozen=True, slots=True)
class NewAction:
    summary: str


@dataclass(frozen=True, slots=True)
class UpdateAction:
    summary: str
    replace_id: str


@dataclass(frozen=True, slots=True)
class SkipAction:
    pass


TurnAction = Union[NewAction, UpdateAction, SkipAction]


def parse_classifier_response(text: str) -> ClassifierReply:
    trimmed = text.strip()
    if _SKIP_RE.match(trimmed):
        return SkipReply()
    match = _UPDATE_RE.match(trimmed)
    if match:
        return UpdateReply(index=int(match.group(1)), summary=match.group(2).strip())
    match = _NEW_RE.match(trimmed)
    if match:
        return NewReply(summary=match.group(1).strip())
    return UnparseableReply(raw=trimmed)


def resolve_reply(reply: ClassifierReply, references: list[ContextEntry], raw: str) -> TurnAction:
    """Turn a parsed reply into a store action against the reference entries.

    An UPDATE pointing outside the reference list, or carrying a summary
    shorter than 10 characters, degrades to NEW with whatever text exists.
    """
    if isinstance(reply, SkipReply):
        return SkipAction()
    if isinstance(reply, UpdateReply):
        position = reply.index - 1
        if 0 <= position < len(references) and len(reply.summary) >= MIN_UPDATE_SUMMARY_CHARS:
            return UpdateAction(summary=reply.summary, replace_id=references[position].id)
        return NewAction(summary=reply.summary or raw.strip())
    if isinstance(reply, NewReply):
        return NewAction(summary=reply.summary)
    return NewAction(summary=reply.raw)


def parse_dedup_response(text: str, references: list[ContextEntry]) -> TurnAction:
    """Parse and resolve a classifier response in one step."""
    return resolve_reply(parse_classifier_response(text), references, text)


# =============================================================================
# Transcript
# =============================================================================


def strip_injected_context(messages: list[dict]) -> list[dict]:
    """Messages with previously injected ``<sliding-context>`` blocks removed from their text."""
    cleaned = []
    for msg in messages:
        text = text_content(msg)
        if INJECTED_MARKER in text:
            msg = {**msg, "content": _INJECTED_BLOCK_RE.sub("", text).strip()}
        cleaned.append(msg)
    return cleaned


def build_transcript(messages: list[dict], max_chars: int = TRANSCRIPT_MAX_CHARS) -> str:
    """Render only the last interaction: the last user message and everything after it."""
    last_user = next(
        (i for i in range(len(messages) - 1, -1, -1) if messages[i].get("role") == "user"),
        None,
    )
    if last_user is None:
        return ""

    lines: list[str] = []
    char_count = 0
    for msg in messages[last_user:]:
        role = msg.get("role")
        if not role or role == "system":
            continue

        if role == "tool":
            line = f"[Tool result: {msg.get('name') or 'tool'}]"
        elif role == "assistant" and isinstance(msg.get("tool_calls"), list):
            calls = [
                (call.get("function") or {}).get("name", "unknown")
                for call in msg["tool_calls"]
                if isinstance(call, dict)
            ]
            line = f"[Assistant called: {', '.join(calls)}]"
        else:
            text = text_content(msg)
            if not text:
                continue
            prefix = "User" if role == "user" else "Assistant"
            line = f"{prefix}: {truncate(text, min(TRANSCRIPT_LINE_MAX_CHARS, max_chars - char_count))}"

        if char_count + len(line) > max_chars:
            break
        lines.append(line)
        char_count += len(line)

    return "\n".join(lines)


# =============================================================================
# Classification
# =============================================================================


def classify_turn(
    messages: list[dict],
    references: list[ContextEntry],
    config: Config,
    generate_fn: Callable[[str], str] | None = None,
) -> TurnAction:
    """Summarize the last turn and decide NEW / UPDATE / SKIP against ``references``.

    ``references`` are the most recent stored entries, newest first. A failing
    generation call never propagates: the rule-based summary is stored as NEW.
    """
    if generate_fn is None:
        def generate_fn(prompt: str) -> str:
            return generate(prompt, config)

    # Strip before build_transcript truncates lines and cuts closing tags.
    injected = any(INJECTED_MARKER in text_content(m) for m in messages)
    messages = strip_injected_context(messages)

    def fallback() -> NewAction:
        return NewAction(summary=extract_turn_summary(messages, config.summary_max_chars))

    transcript = build_transcript(messages)
    if len(transcript) < MIN_TRANSCRIPT_CHARS:
        return SkipAction() if injected else fallback()

    strings = t(config.locale)
    dedup_suffix = strings.dedup_prompt([e.summary for e in references]) if references else ""
    prompt = f"""{strings.summarization_prompt}{dedup_suffix}

<transcript>
{transcript}
</transcript>

Summary:"""

    try:
        text = generate_fn(prompt).strip()
    except Exception as e:
        log(f"LLM summarization failed, using rule-based: {e}", "WARNING")
        return fallback()

    if len(text) < MIN_RESPONSE_CHARS:
        return fallback()
    if not references:
        return NewAction(summary=text)
    return parse_dedup_response(text, references)
