"""Shared data models for sliding-context."""

from dataclasses import dataclass, field
from functools import lru_cache

from lancedb.pydantic import LanceModel, Vector

SESSION_TYPES = frozenset({"dm", "group", "cron", "webhook", "isolated", "unknown"})


@dataclass(frozen=True, slots=True)
class MessageRange:
    start_id: str
    end_id: str


@dataclass(frozen=True, slots=True)
class ContextEntry:
    """One stored memory unit: a turn summary plus its embedding.

    Entries are immutable values. An update is modelled as delete-then-insert,
    so ``id``, ``timestamp`` and ``vector`` always belong together.
    """

    id: str
    summary: str
    vector: list[float] = field(repr=False)
    session_key: str
    session_type: str
    timestamp: int  # epoch milliseconds
    channel: str = ""
    has_tool_calls: bool = False
    has_decision: bool = False
    topics: tuple[str, ...] = ()
    session_file: str | None = None
    message_range: MessageRange | None = None
    telegram_message_ids: tuple[int, ...] | None = None


@dataclass(frozen=True, slots=True)
class SearchResult:
    """Nearest-neighbour hit: entry plus raw similarity from the store."""

    entry: ContextEntry
    score: float


@dataclass(frozen=True, slots=True)
class ScoredEntry:
    """Entry with a score valid only for one retrieval call. Never persisted."""

    entry: ContextEntry
    final_score: float

    @property
    def id(self) -> str:
        return self.entry.id

    @property
    def timestamp(self) -> int:
        return self.entry.timestamp

    @property
    def summary(self) -> str:
        return self.entry.summary


@lru_cache(maxsize=None)
def entry_schema(vector_dim: int) -> type[LanceModel]:
    """LanceDB table schema for context entries of a fixed vector size.

    IMPORTANT: Any changes to this schema require migration of existing data.
    Nested values (topics, message range, telegram ids) are stored as JSON strings.
    """

    class ContextEntryRow(LanceModel):
        id: str  # UUID hex
        summary: str
        vector: Vector(vector_dim)  # type: ignore[valid-type]
        session_key: str
        session_type: str
        channel: str
        timestamp: int
        has_tool_calls: bool
        has_decision: bool
        topics: str  # JSON array as string
        session_file: str
        message_range: str
        telegram_message_ids: str

    return ContextEntryRow
