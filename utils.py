"""Shared utility functions for sliding-context."""

import os
import re
import sys
import time
from datetime import datetime
from pathlib import Path

LOG_PREFIX = "[sliding-context]"


def log(message: str, level: str = "INFO") -> None:
    """Write a diagnostic line to stderr (stdout belongs to the MCP transport).

    When SLIDING_CONTEXT_LOG_PATH is set the line is also appended to that file.
    """
    print(f"{LOG_PREFIX} {level}: {message}", file=sys.stderr)
    log_path = os.environ.get("SLIDING_CONTEXT_LOG_PATH")
    if not log_path:
        return
    path = Path(log_path).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a") as f:
            f.write(f"[{datetime.now().isoformat()}] {level}: {message}\n")
    except OSError as e:
        print(f"{LOG_PREFIX} WARNING: log file write failed: {e}", file=sys.stderr)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def escape_filter_value(value: str) -> str:
    """Escape single quotes in filter values to prevent injection."""
    return value.replace("'", "''")


def text_content(message: dict) -> str:
    """Plain text of a chat message whose content is a string or a block list."""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return " ".join(
            str(block.get("text") or "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        )
    return ""


def truncate(text: str, max_len: int, collapse_whitespace: bool = False) -> str:
    """Cut text to max_len characters, marking the cut with an ellipsis."""
    if collapse_whitespace:
        text = re.sub(r"\s+", " ", text).strip()
    if len(text) <= max_len:
        return text
    if max_len <= 0:
        return ""
    return text[: max_len - 1] + "…"
