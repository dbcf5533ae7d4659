"""Gemini text generation used for turn summaries, classification and merges."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from config import Config, get_api_key

if TYPE_CHECKING:
    from google.genai import Client as GenAIClient


class GenerationError(RuntimeError):
    """The text-generation call failed or returned nothing usable."""


_lock = threading.Lock()
_genai_client: GenAIClient | None = None


def get_genai_client() -> GenAIClient:
    """Get or create the GenAI client singleton (thread-safe)."""
    global _genai_client
    if _genai_client is None:
        with _lock:
            if _genai_client is None:  # Double-check after acquiring lock
                api_key = get_api_key()
                if not api_key:
                    raise ValueError(
                        "GOOGLE_API_KEY not found. Set environment variable or create ~/.secrets/GOOGLE_API_KEY"
                    )
                from google import genai

                _genai_client = genai.Client(api_key=api_key)
    return _genai_client


def generate(prompt: str, config: Config, max_output_tokens: int = 500) -> str:
    """Run one prompt through the configured model and return the stripped text.

    Raises:
        GenerationError: on any client/API failure or an empty response.
    """
    try:
        from google.genai import types

        client = get_genai_client()
        response = client.models.generate_content(
            model=config.llm_model,
            contents=prompt,
            config=types.GenerateContentConfig(max_output_tokens=max_output_tokens),
        )
        text = (response.text or "").strip()
    except Exception as e:
        raise GenerationError(f"Gemini generation failed: {e}") from e
    if not text:
        raise GenerationError("Gemini returned an empty response")
    return text
