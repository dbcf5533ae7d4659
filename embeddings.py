"""Text embeddings with an Ollama -> Google provider chain."""

from __future__ import annotations

import asyncio
from functools import lru_cache

import numpy as np
import requests

from config import Config
from llm import get_genai_client
from utils import log

MAX_INPUT_CHARS = 8000
GOOGLE_FALLBACK_MODEL = "gemini-embedding-001"


class EmbeddingError(RuntimeError):
    """No provider produced a usable vector of the configured size."""


def _normalize(values: list[float], expected_dim: int, provider: str) -> list[float]:
    embedding = np.asarray(values, dtype=float)
    # Never pad or truncate: vectors of another size cannot be compared later.
    if embedding.shape != (expected_dim,):
        raise EmbeddingError(
            f"{provider} returned a {embedding.size}-dim vector, store expects {expected_dim}"
        )
    norm = np.linalg.norm(embedding)
    return (embedding / norm).tolist() if norm > 0 else embedding.tolist()


def _embed_ollama(text: str, config: Config) -> list[float]:
    response = requests.post(
        f"{config.ollama_base_url}/api/embeddings",
        json={"model": config.embedding_model, "prompt": text},
        timeout=30,
    )
    response.raise_for_status()
    return _normalize(response.json().get("embedding", []), config.embedding_dim, "Ollama")


def _embed_google(text: str, config: Config, task_type: str) -> list[float]:
    from google.genai import types

    model = config.embedding_model if config.embedding_provider == "google" else GOOGLE_FALLBACK_MODEL
    client = get_genai_client()
    response = client.models.embed_content(
        model=model,
        contents=text,
        config=types.EmbedContentConfig(task_type=task_type, output_dimensionality=config.embedding_dim),
    )
    return _normalize(response.embeddings[0].values, config.embedding_dim, "Google")


def compute_embedding(text: str, config: Config, task_type: str = "SEMANTIC_SIMILARITY") -> list[float]:
    """Synchronous embedding computation with provider fallback chain.

    Raises:
        EmbeddingError: when every provider fails.
    """
    text = text[:MAX_INPUT_CHARS]
    errors: list[str] = []

    if config.embedding_provider == "ollama":
        try:
            return _embed_ollama(text, config)
        except Exception as e:
            errors.append(f"ollama: {e}")
            log(f"Ollama embedding error, falling back to Google: {e}", "WARNING")
            log(
                f"{GOOGLE_FALLBACK_MODEL} vectors are not comparable with {config.embedding_model} vectors; "
                "similarity against entries from the other model is meaningless",
                "WARNING",
            )

    try:
        return _embed_google(text, config, task_type)
    except Exception as e:
        errors.append(f"google: {e}")
        log(f"Google embedding error: {e}", "ERROR")

    raise EmbeddingError("All embedding providers failed (" + "; ".join(errors) + ")")


class Embeddings:
    """Embedding service bound to one configuration."""

    def __init__(self, config: Config):
        self.config = config
        self._cached = lru_cache(maxsize=128)(self._embed_tuple)

    def _embed_tuple(self, text: str, task_type: str) -> tuple[float, ...]:
        return tuple(compute_embedding(text, self.config, task_type))

    def embed(self, text: str, task_type: str = "SEMANTIC_SIMILARITY") -> list[float]:
        """Embed text, reusing cached vectors for repeated inputs."""
        return list(self._cached(text, task_type))

    async def aembed(self, text: str, task_type: str = "SEMANTIC_SIMILARITY") -> list[float]:
        """Embed text in a worker thread."""
        return await asyncio.to_thread(self.embed, text, task_type)
