"""
Conversation pagination: keyset (cursor) pages over a user's conversations,
optionally narrowed by full-text search.

Responsibility: Build the filter, validate sorting, translate cursors into the
two-column continuation predicate, and fetch limit + 1 rows to detect the next
page. Read-only; no transaction, so concurrent writes between pages can skip or
repeat an item.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from siteplane.core.config import DEFAULT_PAGE_LIMIT
from siteplane.core.conversation_store import ConversationSearchIndex, ConversationStore
from siteplane.core.errors import InvalidInputError, SiteplaneError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

SORT_FIELDS: tuple[str, ...] = ("title", "created_at", "updated_at")
TIEBREAK_FIELD = "updated_at"
START_CURSOR = "start"

NOT_EXPIRED: dict[str, Any] = {"$or": [{"expired_at": None}, {"expired_at": {"$exists": False}}]}


@dataclass
class ConversationPage:
    items: list[dict[str, Any]]
    next_cursor: str | None = None


@dataclass
class ConversationIdPage(ConversationPage):
    """Page from page_by_ids; by_id maps conversation_id -> item for the returned items."""

    by_id: dict[str, dict[str, Any]] = field(default_factory=dict)


def _parse_datetime(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _cursor_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def encode_cursor(primary: Any, secondary: Any) -> str:
    """Opaque token for the position after an item: base64(JSON{primary, secondary}); null stays null."""
    composite = {"primary": _cursor_value(primary), "secondary": _cursor_value(secondary)}
    return base64.b64encode(json.dumps(composite).encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str, sort_by: str) -> tuple[Any, datetime | None]:
    """
    Return (primary, secondary) typed for sort_by. Either may be None when the
    item had no value for that field.

    Raises ValueError on anything that is not a cursor this module produced.
    """
    try:
        decoded = json.loads(base64.b64decode(cursor, validate=True).decode("utf-8"))
        primary, secondary = decoded["primary"], decoded["secondary"]
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError) as e:
        raise ValueError(f"Invalid cursor: {e}") from e
    for value in (primary, secondary):
        if value is not None and not isinstance(value, str):
            raise ValueError("Invalid cursor: primary and secondary must be strings or null")
    if primary is not None and sort_by != "title":
        primary = _parse_datetime(primary)
    return primary, None if secondary is None else _parse_datetime(secondary)


def _after(field: str, direction: str, value: Any) -> list[dict[str, Any]]:
    """Clauses matching values strictly past value in sort order; null sorts lowest."""
    if value is None:
        return [{field: {"$ne": None}}] if direction == "asc" else []
    if direction == "asc":
        return [{field: {"$gt": value}}]
    return [{field: {"$lt": value}}, {field: None}]


def continuation_filter(sort_by: str, direction: str, primary: Any, secondary: datetime | None) -> dict[str, Any]:
    """(sort_by after primary) OR (sort_by == primary AND updated_at after secondary)."""
    clauses = _after(sort_by, direction, primary)
    if sort_by != TIEBREAK_FIELD:
        tie = _after(TIEBREAK_FIELD, direction, secondary)
        if len(tie) == 1:
            clauses.append({sort_by: primary, **tie[0]})
        elif tie:
            clauses.append({"$and": [{sort_by: primary}, {"$or": tie}]})
    if not clauses:
        # nothing sorts past a null in descending order
        return {sort_by: {"$in": []}}
    if len(clauses) == 1:
        return clauses[0]
    return {"$or": clauses}


def validate_sort(sort_by: str, sort_direction: str) -> tuple[str, str]:
    if sort_by not in SORT_FIELDS:
        raise InvalidInputError(f"Invalid sort_by field: {sort_by}. Must be one of {', '.join(SORT_FIELDS)}")
    return sort_by, "asc" if sort_direction == "asc" else "desc"


def _validate_limit(limit: int) -> int:
    if not isinstance(limit, int) or limit < 1:
        raise InvalidInputError("limit must be a positive integer")
    return limit


class ConversationPager:
    """Cursor pagination over a ConversationStore."""

    def __init__(self, store: ConversationStore, search_index: ConversationSearchIndex | None = None) -> None:
        self.store = store
        self.search_index = search_index

    def page(
        self,
        user: str,
        cursor: str | None = None,
        limit: int = DEFAULT_PAGE_LIMIT,
        is_archived: bool = False,
        tags: list[str] | None = None,
        search: str | None = None,
        sort_by: str = "updated_at",
        sort_direction: str = "desc",
        tenant_id: str | None = None,
    ) -> ConversationPage:
        sort_by, direction = validate_sort(sort_by, sort_direction)
        limit = _validate_limit(limit)

        filters: list[dict[str, Any]] = [{"user": user}]
        if tenant_id:
            filters.append({"tenant_id": tenant_id})
        if is_archived:
            filters.append({"is_archived": True})
        else:
            filters.append({"$or": [{"is_archived": False}, {"is_archived": {"$exists": False}}]})
        if tags:
            filters.append({"tags": {"$in": list(tags)}})
        filters.append(NOT_EXPIRED)

        if search:
            matching_ids = self._search(search, user, tenant_id)
            if not matching_ids:
                logger.info("[conversation_pager:page] OUT search=%r no matches", search)
                return ConversationPage(items=[], next_cursor=None)
            filters.append({"conversation_id": {"$in": matching_ids}})

        if cursor:
            try:
                primary, secondary = decode_cursor(cursor, sort_by)
                filters.append(continuation_filter(sort_by, direction, primary, secondary))
            except ValueError:
                logger.warning("[conversation_pager:page] invalid cursor format, starting from beginning")

        query = filters[0] if len(filters) == 1 else {"$and": filters}
        order = 1 if direction == "asc" else -1
        sort = [(sort_by, order)]
        if sort_by != TIEBREAK_FIELD:
            sort.append((TIEBREAK_FIELD, order))

        rows = self._find(query, sort, limit + 1)
        next_cursor = None
        if len(rows) > limit:
            rows = rows[:limit]
            last = rows[-1]
            next_cursor = encode_cursor(last.get(sort_by), last.get(TIEBREAK_FIELD))
        logger.info(
            "[conversation_pager:page] OUT user=%s sort=%s:%s items=%d has_next=%s",
            user, sort_by, direction, len(rows), next_cursor is not None,
        )
        return ConversationPage(items=rows, next_cursor=next_cursor)

    def page_by_ids(
        self,
        user: str,
        conversation_ids: list[str],
        cursor: str | None = None,
        limit: int = DEFAULT_PAGE_LIMIT,
        tenant_id: str | None = None,
    ) -> ConversationIdPage:
        """
        Page through an explicit id list, newest updated_at first.

        cursor is the updated_at ISO timestamp of the last item seen, or "start".
        """
        limit = _validate_limit(limit)
        if not conversation_ids:
            return ConversationIdPage(items=[], next_cursor=None, by_id={})

        query: dict[str, Any] = {
            "user": user,
            "conversation_id": {"$in": list(conversation_ids)},
            **NOT_EXPIRED,
        }
        if tenant_id:
            query["tenant_id"] = tenant_id
        if cursor and cursor != START_CURSOR:
            try:
                query[TIEBREAK_FIELD] = {"$lt": _parse_datetime(cursor)}
            except ValueError:
                logger.warning("[conversation_pager:page_by_ids] invalid cursor %r, starting from beginning", cursor)

        rows = self._find(query, [(TIEBREAK_FIELD, -1)], limit + 1)
        next_cursor = None
        if len(rows) > limit:
            rows = rows[:limit]
            next_cursor = _cursor_value(rows[-1].get(TIEBREAK_FIELD))
        by_id = {row["conversation_id"]: row for row in rows}
        return ConversationIdPage(items=rows, next_cursor=next_cursor, by_id=by_id)

    def _search(self, text: str, user: str, tenant_id: str | None) -> list[str]:
        if self.search_index is None:
            raise UpstreamUnavailableError("Search is not available")
        try:
            return list(self.search_index.search(text, user, tenant_id))
        except SiteplaneError:
            raise
        except Exception as e:
            logger.error("[conversation_pager:search] search index failed: %s", e)
            raise UpstreamUnavailableError("Error during search") from e

    def _find(self, query: dict[str, Any], sort: list[tuple[str, int]], limit: int) -> list[dict[str, Any]]:
        try:
            return self.store.find(query, sort, limit)
        except Exception as e:
            logger.error("[conversation_pager:find] store query failed: %s", e)
            raise UpstreamUnavailableError("Error getting conversations") from e
