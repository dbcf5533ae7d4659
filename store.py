"""LanceDB storage layer for context entries."""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any

import lancedb
import pyarrow.compute as pc

from models import ContextEntry, MessageRange, SearchResult, entry_schema
from ranking import MS_PER_HOUR
from utils import escape_filter_value, now_ms


class ContextStore:
    """Entry store adapter: insert, delete, scan, nearest-neighbour and recency queries.

    Every operation is atomic at the LanceDB level. The table is opened (or
    created) lazily on first use.
    """

    def __init__(self, db_path: Path | str, vector_dim: int, table_name: str = "context_entries"):
        self.db_path = Path(db_path)
        self.vector_dim = vector_dim
        self.table_name = table_name
        self._lock = threading.RLock()
        self._db: lancedb.DBConnection | None = None
        self._table: lancedb.table.Table | None = None

    def get_table(self) -> lancedb.table.Table:
        """Get or create the entries table (thread-safe)."""
        if self._table is None:
            with self._lock:
                if self._table is None:  # Double-check after acquiring lock
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                    self._db = lancedb.connect(str(self.db_path))
                    try:
                        self._table = self._db.open_table(self.table_name)
                    except Exception:
                        self._table = self._db.create_table(
                            self.table_name, schema=entry_schema(self.vector_dim)
                        )
        return self._table

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def insert(self, entry: ContextEntry) -> ContextEntry:
        """Store an entry under a freshly assigned id. Any id on the input is ignored."""
        if len(entry.vector) != self.vector_dim:
            raise ValueError(
                f"Vector has {len(entry.vector)} dimensions, store expects {self.vector_dim}"
            )
        stored = replace(entry, id=uuid.uuid4().hex)
        self.get_table().add([_entry_to_row(stored)])
        return stored

    def delete_by_id(self, entry_id: str) -> None:
        """Delete one entry. A missing id is a no-op."""
        self.get_table().delete(f"id = '{escape_filter_value(entry_id)}'")

    def prune_older_than(self, hours: float) -> None:
        cutoff = now_ms() - int(hours * MS_PER_HOUR)
        self.get_table().delete(f"timestamp < {cutoff}")

    def clear(self) -> None:
        self.get_table().delete("id IS NOT NULL")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def count(self) -> int:
        return self.get_table().count_rows()

    def scan(self) -> list[ContextEntry]:
        """All stored entries in table order."""
        return [_row_to_entry(row) for row in self.get_table().to_arrow().to_pylist()]

    def get_recent(self, limit: int, window_hours: float) -> list[ContextEntry]:
        """Newest entries inside the trailing window, newest first."""
        cutoff = now_ms() - int(window_hours * MS_PER_HOUR)
        arrow_table = self.get_table().to_arrow()
        in_window = arrow_table.filter(pc.greater_equal(arrow_table["timestamp"], cutoff))
        entries = [_row_to_entry(row) for row in in_window.to_pylist()]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]

    def nearest_neighbors(self, vector: list[float], limit: int, min_score: float = 0.0) -> list[SearchResult]:
        """Cosine nearest neighbours with similarity = 1 - distance, best first."""
        rows = self.get_table().search(vector).metric("cosine").limit(limit).to_list()
        results = [SearchResult(entry=_row_to_entry(row), score=1 - row.get("_distance", 0.0)) for row in rows]
        return [r for r in results if r.score >= min_score]


# =============================================================================
# Row conversion
# =============================================================================


def _entry_to_row(entry: ContextEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "summary": entry.summary,
        "vector": list(entry.vector),
        "session_key": entry.session_key,
        "session_type": entry.session_type,
        "channel": entry.channel,
        "timestamp": int(entry.timestamp),
        "has_tool_calls": entry.has_tool_calls,
        "has_decision": entry.has_decision,
        "topics": json.dumps(list(entry.topics)),
        "session_file": entry.session_file or "",
        "message_range": json.dumps(asdict(entry.message_range)) if entry.message_range else "",
        "telegram_message_ids": (
            json.dumps(list(entry.telegram_message_ids)) if entry.telegram_message_ids else ""
        ),
    }


def _loads(raw: Any, default: Any) -> Any:
    if not isinstance(raw, str) or not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


def _row_to_entry(row: dict[str, Any]) -> ContextEntry:
    message_range = _loads(row.get("message_range"), None)
    telegram_ids = _loads(row.get("telegram_message_ids"), None)
    return ContextEntry(
        id=row["id"],
        summary=row["summary"],
        vector=list(row["vector"]),
        session_key=row.get("session_key") or "",
        session_type=row.get("session_type") or "unknown",
        channel=row.get("channel") or "",
        timestamp=int(row["timestamp"]),
        has_tool_calls=bool(row.get("has_tool_calls")),
        has_decision=bool(row.get("has_decision")),
        topics=tuple(_loads(row.get("topics"), [])),
        session_file=row.get("session_file") or None,
        message_range=MessageRange(**message_range) if isinstance(message_range, dict) else None,
        telegram_message_ids=tuple(telegram_ids) if telegram_ids else None,
    )
