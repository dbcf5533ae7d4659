"""Configuration for the sliding context memory.

A single frozen ``Config`` is built once by each entry point (MCP server,
consolidation script, hooks) and handed to every component. Defaults come
from environment variables, read when the instance is constructed.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env(name: str, default: str) -> str:
    return os.environ.get(name, default)


def _env_list(name: str) -> tuple[str, ...]:
    raw = os.environ.get(name, "")
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True, slots=True)
class Config:
    """Sliding context configuration with sensible defaults.

    One store must only ever hold vectors from one embedding model. The Ollama
    provider falls back to Google gemini-embedding-001 when Ollama is down, and
    entries embedded by the fallback do not compare meaningfully with the rest.
    """

    db_path: Path = field(
        default_factory=lambda: Path(
            _env("SLIDING_CONTEXT_DB_PATH", str(Path.home() / ".sliding-context" / "lancedb"))
        ).expanduser()
    )
    table_name: str = "context_entries"
    embedding_provider: str = field(default_factory=lambda: _env("EMBEDDING_PROVIDER", "ollama"))  # ollama | google
    embedding_model: str = field(default_factory=lambda: _env("EMBEDDING_MODEL", "qwen3-embedding:0.6b"))
    embedding_dim: int = field(default_factory=lambda: int(_env("EMBEDDING_DIM", "1024")))
    ollama_base_url: str = field(default_factory=lambda: _env("OLLAMA_BASE_URL", "http://localhost:11434"))
    summarization_mode: str = field(default_factory=lambda: _env("SUMMARIZATION_MODE", "llm"))  # llm | rule-based
    llm_model: str = field(default_factory=lambda: _env("LLM_MODEL", "gemini-3-flash-preview"))

    # Retrieval window
    window_hours: float = 168
    recent_window_hours: float = 12
    decay_half_life_hours: float = 18
    recent_count: int = 5
    relevant_count: int = 3
    min_relevance: float = 0.3
    max_inject_entries: int = 8
    max_inject_tokens: int = 1500

    # Capture
    summary_max_chars: int = 200
    skip_trivial: bool = True
    skip_sessions: tuple[str, ...] = field(default_factory=lambda: _env_list("SLIDING_CONTEXT_SKIP_SESSIONS"))
    dedup_reference_count: int = 3

    # Recall-time word-overlap dedup
    dedup_window_minutes: float = 60
    dedup_jaccard_threshold: float = 0.55

    # Offline consolidation
    consolidation_similarity: float = 0.85

    locale: str = field(default_factory=lambda: _env("SLIDING_CONTEXT_LOCALE", "en"))
    timeline_enabled: bool = field(default_factory=lambda: _env_bool("SLIDING_CONTEXT_TIMELINE", False))
    workspace_path: Path = field(
        default_factory=lambda: Path(_env("SLIDING_CONTEXT_WORKSPACE", str(Path.cwd()))).expanduser()
    )
    prune_interval_hours: float = 1


# Native output size per supported embedding model.
EMBEDDING_DIMENSIONS: dict[str, int] = {
    "qwen3-embedding:0.6b": 1024,
    "mxbai-embed-large": 1024,
    "nomic-embed-text": 768,
    "text-embedding-004": 768,
}

# Models that accept an explicit output_dimensionality.
FLEXIBLE_EMBEDDING_DIMENSIONS: dict[str, frozenset[int]] = {
    "gemini-embedding-001": frozenset({768, 1536, 3072}),
}

VALID_LOCALES = frozenset({"en", "de"})


def vector_dims_for_model(model: str) -> int:
    """Return the fixed vector size for an embedding model."""
    if model in EMBEDDING_DIMENSIONS:
        return EMBEDDING_DIMENSIONS[model]
    if model in FLEXIBLE_EMBEDDING_DIMENSIONS:
        return max(FLEXIBLE_EMBEDDING_DIMENSIONS[model])
    supported = sorted([*EMBEDDING_DIMENSIONS, *FLEXIBLE_EMBEDDING_DIMENSIONS])
    raise ValueError(f"Unsupported embedding model: {model}. Supported: {', '.join(supported)}")


def get_api_key() -> str | None:
    """Get the Google API key from environment or secrets file."""
    key = os.environ.get("GOOGLE_API_KEY") or os.environ.get("GEMINI_API_KEY")
    if key:
        return key
    secrets_path = Path.home() / ".secrets" / "GOOGLE_API_KEY"
    if secrets_path.exists():
        return secrets_path.read_text().strip()
    return None


def validate_config(config: Config) -> None:
    """Refuse to start with an inconsistent configuration.

    Raises:
        ValueError: unsupported model, vector size mismatch, missing
            credential or out-of-range settings.
    """
    model = config.embedding_model
    if model in FLEXIBLE_EMBEDDING_DIMENSIONS:
        allowed = FLEXIBLE_EMBEDDING_DIMENSIONS[model]
        if config.embedding_dim not in allowed:
            raise ValueError(
                f"Unsupported embedding dimensionality {config.embedding_dim} for {model}. "
                f"Valid: {sorted(allowed)}"
            )
    elif vector_dims_for_model(model) != config.embedding_dim:
        raise ValueError(
            f"Embedding dimensionality mismatch: {model} produces "
            f"{vector_dims_for_model(model)}-dim vectors, configured {config.embedding_dim}"
        )

    if config.embedding_provider not in ("ollama", "google"):
        raise ValueError(f"Invalid embedding provider '{config.embedding_provider}'. Valid: ollama, google")
    if config.summarization_mode not in ("llm", "rule-based"):
        raise ValueError(f"Invalid summarization mode '{config.summarization_mode}'. Valid: llm, rule-based")

    needs_google = config.embedding_provider == "google" or config.summarization_mode == "llm"
    if needs_google and not get_api_key():
        raise ValueError(
            "GOOGLE_API_KEY not found. Set environment variable or create ~/.secrets/GOOGLE_API_KEY"
        )

    if config.locale not in VALID_LOCALES:
        raise ValueError(f"Invalid locale '{config.locale}'. Valid: {sorted(VALID_LOCALES)}")
    if config.window_hours <= 0 or config.decay_half_life_hours <= 0:
        raise ValueError("window_hours and decay_half_life_hours must be positive")
    if not 0 <= config.recent_window_hours <= config.window_hours:
        raise ValueError("recent_window_hours must lie between 0 and window_hours")
    if config.max_inject_entries <= 0 or config.dedup_reference_count <= 0:
        raise ValueError("max_inject_entries and dedup_reference_count must be positive")
    for name in ("dedup_jaccard_threshold", "consolidation_similarity", "min_relevance"):
        value = getattr(config, name)
        if not 0 <= value <= 1:
            raise ValueError(f"{name} must be between 0 and 1, got {value}")
