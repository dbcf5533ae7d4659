"""Rule-based turn summarization and metadata extraction. No LLM calls."""

from __future__ import annotations

import re

from models import MessageRange
from utils import text_content, truncate

# =============================================================================
# Trivial turn detection
# =============================================================================

TRIVIAL_PATTERNS = [
    re.compile(r"^HEARTBEAT_OK$"),
    re.compile(r"^NO_REPLY$"),
    re.compile(r"^HEARTBEAT_OK\s"),
    re.compile(r"^\s*$"),
]


def is_trivial_turn(messages: list[dict]) -> bool:
    """True when the last assistant message is empty or a heartbeat/no-reply marker."""
    if not messages:
        return True
    last_assistant = next((m for m in reversed(messages) if m.get("role") == "assistant"), None)
    if last_assistant is None:
        return True
    text = text_content(last_assistant).strip()
    return any(p.search(text) for p in TRIVIAL_PATTERNS)


# =============================================================================
# Summarization
# =============================================================================


def _tool_names(messages: list[dict]) -> list[str]:
    names: dict[str, None] = {}
    for msg in messages:
        if msg.get("role") != "assistant":
            continue
        for call in msg.get("tool_calls") or []:
            fn = call.get("function") if isinstance(call, dict) else None
            if isinstance(fn, dict) and fn.get("name"):
                names[str(fn["name"])] = None
    return list(names)


def extract_turn_summary(messages: list[dict], max_chars: int) -> str:
    """User intent, tools used and outcome, squeezed into max_chars."""
    parts: list[str] = []
    share = int(max_chars * 0.4)

    user_msg = next((m for m in messages if m.get("role") == "user"), None)
    if user_msg is not None:
        text = text_content(user_msg)
        if text:
            parts.append(truncate(text, share, collapse_whitespace=True))

    tools = _tool_names(messages)
    if tools:
        parts.append(f"[{', '.join(tools)}]")

    last_assistant = next(
        (m for m in reversed(messages) if m.get("role") == "assistant" and text_content(m)),
        None,
    )
    if last_assistant is not None:
        text = text_content(last_assistant)
        if text and (not parts or text != parts[0]):
            parts.append("→ " + truncate(text, share, collapse_whitespace=True))

    return " ".join(parts)[:max_chars]


# =============================================================================
# Metadata extraction
# =============================================================================

DECISION_PATTERNS = [
    re.compile(r"\b(decided|decision|we('ll| will)|let's|agreed|going with)\b", re.IGNORECASE),
    re.compile(r"\b(entschieden|entscheidung|machen wir|lass uns|einig)\b", re.IGNORECASE),
]

TOPIC_PATTERNS = [
    (re.compile(r"\b(PR|pull request)\s*#?\d+", re.IGNORECASE), "pr-review"),
    (re.compile(r"\b(deploy|deployment|release|ship)\b", re.IGNORECASE), "deployment"),
    (re.compile(r"\b(email|inbox|digest|mail)\b", re.IGNORECASE), "email"),
    (re.compile(r"\b(cron|schedule|timer|reminder)\b", re.IGNORECASE), "scheduling"),
    (re.compile(r"\b(blog|post|article|draft)\b", re.IGNORECASE), "blogging"),
    (re.compile(r"\b(git|commit|branch|merge|rebase)\b", re.IGNORECASE), "git"),
    (re.compile(r"\b(test|testing|pytest|spec)\b", re.IGNORECASE), "testing"),
    (re.compile(r"\b(refactor|cleanup|reorganize)\b", re.IGNORECASE), "refactoring"),
    (re.compile(r"\b(bug|fix|error|crash|broken)\b", re.IGNORECASE), "bugfix"),
    (re.compile(r"\b(config|setup|install|bootstrap)\b", re.IGNORECASE), "setup"),
    (re.compile(r"\b(security|auth|permission|access)\b", re.IGNORECASE), "security"),
]

TELEGRAM_MSG_ID_PATTERN = re.compile(r"\[message_id:\s*(\d+)\]")


def has_decision_signal(messages: list[dict]) -> bool:
    return any(p.search(text_content(m)) for m in messages for p in DECISION_PATTERNS)


def has_tool_calls_in_turn(messages: list[dict]) -> bool:
    return any(m.get("role") == "assistant" and m.get("tool_calls") for m in messages)


def extract_topics(messages: list[dict]) -> list[str]:
    topics: dict[str, None] = {}
    for msg in messages:
        text = text_content(msg)
        for pattern, topic in TOPIC_PATTERNS:
            if pattern.search(text):
                topics[topic] = None
    return list(topics)


def detect_session_type(session_key: str) -> str:
    """Map a host session key to one of the SESSION_TYPES."""
    if ":group:" in session_key:
        return "group"
    if session_key.startswith("cron:"):
        return "cron"
    if session_key.startswith("hook:"):
        return "webhook"
    if ":isolated:" in session_key or "spawn" in session_key:
        return "isolated"
    if ":main" in session_key:
        return "dm"
    return "unknown"


def extract_message_range(messages: list[dict]) -> MessageRange | None:
    if not messages:
        return None
    first_id = messages[0].get("id")
    last_id = messages[-1].get("id")
    if not isinstance(first_id, str) or not isinstance(last_id, str):
        return None
    return MessageRange(start_id=first_id, end_id=last_id)


def extract_telegram_message_ids(messages: list[dict]) -> list[int]:
    ids: dict[int, None] = {}
    for msg in messages:
        if msg.get("role") != "user":
            continue
        for match in TELEGRAM_MSG_ID_PATTERN.finditer(text_content(msg)):
            ids[int(match.group(1))] = None
    return list(ids)
