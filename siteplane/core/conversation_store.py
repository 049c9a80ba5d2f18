"""
Conversation store and search index interfaces, plus in-memory implementations
used by tests and by local runs without MONGO_URI (see mongo_store.py).

The chat subsystem owns conversations; this service only reads them. Queries use
the Mongo filter dialect ($and, $or, $in, $exists, $gt, $gte, $lt, $lte, $ne,
equality) so a document database can stand behind the same interface.
"""

import copy
import logging
import threading
from typing import Any, Iterable, Protocol

logger = logging.getLogger(__name__)

# (field, 1 for ascending | -1 for descending)
SortSpec = list[tuple[str, int]]

_MISSING = object()


class ConversationStore(Protocol):
    def find(self, query: dict[str, Any], sort: SortSpec, limit: int | None = None) -> list[dict[str, Any]]: ...


class ConversationSearchIndex(Protocol):
    def search(self, text: str, user: str, tenant_id: str | None = None) -> list[str]:
        """Return conversation ids matching text, scoped to user (and tenant)."""
        ...


def _compare(op: str, value: Any, operand: Any) -> bool:
    if op == "$in":
        if isinstance(value, list):
            return any(v in operand for v in value)
        return value is not _MISSING and value in operand
    if op == "$exists":
        return (value is not _MISSING) == bool(operand)
    if op == "$ne":
        return not _equals(value, operand)
    if value is _MISSING or value is None or operand is None:
        return False
    if op == "$gt":
        return value > operand
    if op == "$gte":
        return value >= operand
    if op == "$lt":
        return value < operand
    if op == "$lte":
        return value <= operand
    raise ValueError(f"Unsupported operator: {op}")


def _equals(value: Any, expected: Any) -> bool:
    # null matches a missing field
    if expected is None:
        return value is _MISSING or value is None
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def matches(document: dict[str, Any], query: dict[str, Any]) -> bool:
    """Evaluate a Mongo-style filter against one document."""
    for key, condition in query.items():
        if key == "$and":
            if not all(matches(document, q) for q in condition):
                return False
        elif key == "$or":
            if not any(matches(document, q) for q in condition):
                return False
        else:
            value = document.get(key, _MISSING)
            if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
                if not all(_compare(op, value, operand) for op, operand in condition.items()):
                    return False
            elif not _equals(value, condition):
                return False
    return True


def sort_documents(documents: list[dict[str, Any]], sort: SortSpec) -> list[dict[str, Any]]:
    """Stable multi-key sort; missing or None values sort first."""
    rows = list(documents)
    for field, direction in reversed(sort):
        rows.sort(key=lambda d: (d.get(field) is not None, d.get(field)), reverse=direction < 0)
    return rows


class InMemoryConversationStore:
    """Conversation documents held in process memory, keyed by conversation_id."""

    def __init__(self, documents: Iterable[dict[str, Any]] = ()) -> None:
        self._docs: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        for doc in documents:
            self.upsert(doc)

    def upsert(self, document: dict[str, Any]) -> None:
        conversation_id = document.get("conversation_id")
        if not conversation_id:
            raise ValueError("conversation_id is required")
        with self._lock:
            current = self._docs.get(conversation_id, {})
            self._docs[conversation_id] = {**current, **document}

    def all(self) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(d) for d in self._docs.values()]

    def find(self, query: dict[str, Any], sort: SortSpec, limit: int | None = None) -> list[dict[str, Any]]:
        with self._lock:
            hits = [copy.deepcopy(d) for d in self._docs.values() if matches(d, query)]
        hits = sort_documents(hits, sort)
        if limit is not None:
            hits = hits[:limit]
        logger.debug("[conversation_store:find] query=%s hits=%d", query, len(hits))
        return hits


class InMemorySearchIndex:
    """Term search over conversation titles: every query term must appear."""

    def __init__(self, store: InMemoryConversationStore) -> None:
        self.store = store

    def search(self, text: str, user: str, tenant_id: str | None = None) -> list[str]:
        terms = [t for t in (text or "").lower().split() if t]
        if not terms:
            return []
        ids = []
        for doc in self.store.all():
            if doc.get("user") != user:
                continue
            if tenant_id and doc.get("tenant_id") != tenant_id:
                continue
            title = (doc.get("title") or "").lower()
            if all(t in title for t in terms):
                ids.append(doc["conversation_id"])
        return ids
