"""
Host hook handlers for Droid.

The capture handler runs when a turn ends (Stop event) and indexes its
summary; the recall handler runs when a prompt is submitted
(UserPromptSubmit) and returns the context block as additionalContext.
Both share the database with the MCP server.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

from server import capture_turn, recall_context
from utils import log


def session_key_for(payload: dict[str, Any]) -> str:
    """Host session key; interactive Droid sessions count as direct messages."""
    if payload.get("session_key"):
        return str(payload["session_key"])
    session_id = payload.get("session_id") or payload.get("sessionId")
    return f"droid:main:{session_id}" if session_id else "unknown"


def read_transcript_messages(transcript_path: str | Path) -> list[dict]:
    """Chat messages from a Droid transcript (JSONL, one event per line)."""
    messages = []
    try:
        with Path(transcript_path).open() as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                message = event.get("message") if event.get("type") == "message" else event
                if isinstance(message, dict) and message.get("role"):
                    messages.append(message)
    except OSError as e:
        log(f"Error reading transcript: {e}", "ERROR")
    return messages


def handle_capture_event(payload: dict[str, Any]) -> str:
    messages = payload.get("messages")
    if not isinstance(messages, list):
        transcript_path = payload.get("transcript_path")
        messages = read_transcript_messages(transcript_path) if transcript_path else []
    result = asyncio.run(capture_turn(messages, session_key_for(payload), str(payload.get("channel") or "")))
    log(f"Capture hook: {result}")
    return result


def handle_recall_event(payload: dict[str, Any]) -> dict[str, Any] | None:
    """hookSpecificOutput for the host, or None when there is nothing to inject."""
    prompt = str(payload.get("prompt") or "").strip()
    context = asyncio.run(recall_context(prompt, session_key_for(payload)))
    if not context:
        return None
    return {
        "hookSpecificOutput": {
            "hookEventName": payload.get("hookEventName", "UserPromptSubmit"),
            "additionalContext": context,
        }
    }
